#!/usr/bin/env python
"""
Script to evaluate checkpointed models for the breast-tumor subtype study.
Reloads every saved model, scores it on a saved partition and reports the
diagnostic weighted-vote ensemble over all of them.
"""

import argparse
import os
import sys

import joblib
from loguru import logger

from brca_subtype.config import Config
from brca_subtype.data_preprocessing import DataPreprocessor
from brca_subtype.ensemble_methods import EnsembleBuilder
from brca_subtype.evaluation_metrics import Evaluator
from brca_subtype.logging_utils import setup_logging


def evaluate_models(argv=None):
    """Evaluate trained models."""
    parser = argparse.ArgumentParser(description='Evaluate saved subtype classification models')

    parser.add_argument('--model-dir', type=str, default='models/saved_models',
                        help='Directory containing trained models')
    parser.add_argument('--partition', type=str,
                        default='results/ml_results/processed/validation.csv',
                        help='Scaled partition written by run_pipeline.py')
    parser.add_argument('--output-dir', type=str, default='results/evaluation',
                        help='Output directory for evaluation results')

    args = parser.parse_args(argv)
    setup_logging()

    config = Config()
    config.results_dir = args.output_dir
    os.makedirs(config.results_dir, exist_ok=True)

    model_files = sorted(f for f in os.listdir(args.model_dir) if f.endswith('.pkl'))
    if not model_files:
        logger.error(f"No model files found in {args.model_dir}")
        return {}
    logger.info(f"Found {len(model_files)} model files")

    models = {}
    for model_file in model_files:
        model = joblib.load(os.path.join(args.model_dir, model_file))
        models[model.name] = model

    classes = next(iter(models.values())).classes
    dataset = DataPreprocessor(config).load_processed_data(args.partition, classes=classes)
    evaluator = Evaluator(classes)

    results = {}
    for name, model in models.items():
        results[name] = evaluator.evaluate(model.predict(dataset.features), dataset.labels.to_numpy())
        logger.info(f"  {name}: accuracy={results[name].accuracy:.4f}, "
                    f"kappa={results[name].kappa:.4f}, AUC={results[name].auc:.4f}")

    if len(models) >= 2:
        ensemble = EnsembleBuilder(config).diagnostic_ensemble(models, dataset)
        results[ensemble['model_name']] = ensemble['evaluation']

    summary = Evaluator.summarize(results)
    summary_path = os.path.join(config.results_dir, 'evaluation_summary.csv')
    summary.to_csv(summary_path, index=False)
    logger.info(f"Evaluation completed. Summary saved to {summary_path}")

    return results


if __name__ == "__main__":
    sys.exit(0 if evaluate_models() else 1)

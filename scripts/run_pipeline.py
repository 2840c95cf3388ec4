#!/usr/bin/env python
"""
Main pipeline script for the breast-tumor subtype study.
Runs the complete ML pipeline from the expression table to ensemble evaluation.
"""

import argparse
import os
import sys
import time
from datetime import datetime

from loguru import logger

from brca_subtype.config import Config
from brca_subtype.data_preprocessing import DataPreprocessor
from brca_subtype.ensemble_methods import EnsembleBuilder
from brca_subtype.evaluation_metrics import Evaluator
from brca_subtype.logging_utils import setup_logging
from brca_subtype.model_training import ModelTrainer
from brca_subtype.resampling import MinorityOversampler


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Run the ductal vs. lobular classification pipeline')

    parser.add_argument('--config', type=str, default=None,
                        help='Path to YAML configuration file')
    parser.add_argument('--data', type=str, default=None,
                        help='Path to the expression table (CSV)')
    parser.add_argument('--models', type=str, nargs='+', default=None,
                        help='Specific models to train')
    parser.add_argument('--output-dir', type=str, default=None,
                        help='Custom results directory')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for splitting, oversampling, CV and network initialization')
    parser.add_argument('--n-jobs', type=int, default=None,
                        help='Parallel workers for hyperparameter sweeps')
    parser.add_argument('--save-models', action='store_true',
                        help='Checkpoint trained models to the models directory')

    return parser.parse_args(argv)


def build_config(args) -> Config:
    config = Config.from_yaml(args.config) if args.config else Config()

    if args.data:
        config.data_path = args.data
    if args.models:
        config.selected_models = args.models
    if args.output_dir:
        config.results_dir = args.output_dir
    if args.seed is not None:
        config.random_state = args.seed
    if args.n_jobs is not None:
        config.n_jobs = args.n_jobs

    config.validate()
    return config


def run_complete_pipeline(config: Config, save_models: bool = False):
    """Run the complete subtype classification pipeline."""
    logger.info("=" * 80)
    logger.info("BREAST-TUMOR SUBTYPE CLASSIFICATION - COMPLETE PIPELINE")
    logger.info("=" * 80)
    logger.info(f"Start Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    total_start_time = time.time()
    config.create_directories()
    config.to_yaml(f"{config.results_dir}/config.yaml")

    # 1. Preprocessing and splitting
    preprocessor = DataPreprocessor(config)
    data = preprocessor.run_preprocessing_pipeline()
    train, test, validation = data['train'], data['test'], data['validation']
    preprocessor.save_processed_data(
        {'train': train, 'test': test, 'validation': validation},
        os.path.join(config.results_dir, 'processed'),
    )

    # 2. Class imbalance (training partition only)
    logger.info("CLASS IMBALANCE HANDLING")
    oversampler = MinorityOversampler(
        k_neighbors=config.smote_k_neighbors,
        target_count=config.smote_target_count,
        random_state=config.random_state,
    )
    train_balanced = oversampler.fit_resample(train)
    logger.info(f"Original class distribution: {train.class_counts().to_dict()}")
    logger.info(f"Balanced class distribution: {train_balanced.class_counts().to_dict()}")

    # 3. Model training
    model_trainer = ModelTrainer(config)
    model_results = model_trainer.train_all_models(train_balanced, test, validation,
                                                   save=save_models)
    model_trainer.save_all_results()
    if model_trainer.failures:
        logger.warning(f"Models that failed to converge: {list(model_trainer.failures)}")

    # 4. Ensembles
    ensemble_builder = EnsembleBuilder(config)
    ensemble_results = ensemble_builder.create_all_ensembles(model_results, test, validation,
                                                             save=True)

    # 5. Summary
    summary = Evaluator.summarize({
        **{name: r['validation'] for name, r in model_results.items()},
        **{name: r['evaluation'] for name, r in ensemble_results.items()
           if name.endswith('Validation')},
    })
    logger.info("Validation performance:\n" + summary.to_string(index=False, float_format='%.4f'))

    total_time = time.time() - total_start_time
    logger.info(f"PIPELINE COMPLETED in {total_time:.1f}s; results saved to {config.results_dir}/")

    return {
        'results': model_results,
        'ensembles': ensemble_results,
        'summary': summary,
        'config': config,
        'total_time': total_time,
        'best_models': model_trainer.best_models,
        'failures': model_trainer.failures,
        'best_ensemble': ensemble_builder.get_best_ensemble(),
    }


def main(argv=None) -> int:
    args = parse_args(argv)
    config = build_config(args)
    setup_logging(config.logs_dir, run_name='pipeline')

    try:
        run_complete_pipeline(config, save_models=args.save_models)
    except Exception:
        logger.exception("PIPELINE FAILED")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

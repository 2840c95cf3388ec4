"""
Ensemble methods module for the breast-tumor subtype study.
"""

import json
import os
from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from .config import config
from .dataset import Dataset
from .evaluation_metrics import Evaluator
from .exceptions import EvaluationError
from .model_training import TrainedModel


def accuracy_weights(models: Dict[str, TrainedModel], dataset: Dataset) -> pd.Series:
    """Each model's accuracy on ``dataset``, normalized to sum to 1."""
    evaluator = Evaluator(dataset.classes)
    accuracies = pd.Series({
        name: evaluator.evaluate(model.predict(dataset.features), dataset.labels.to_numpy()).accuracy
        for name, model in models.items()
    }, dtype=float)

    total = accuracies.sum()
    if not total > 0:
        raise EvaluationError(f"Cannot weight models {list(models)}: every accuracy is zero")
    return accuracies / total


def weighted_vote(indicators: pd.DataFrame, weights: pd.Series) -> np.ndarray:
    """Weighted sum of 0/1 class indicators per sample; 1 where the sum is at least 0.5.

    ``indicators`` has one row per sample and one column per model.
    """
    missing = set(weights.index) - set(indicators.columns)
    if missing:
        raise EvaluationError(f"No predictions for weighted models: {sorted(missing)}")
    if (weights < 0).any():
        raise EvaluationError(f"Ensemble weights must be non-negative: {weights.to_dict()}")
    if not np.isclose(weights.sum(), 1.0):
        raise EvaluationError(f"Ensemble weights must sum to 1, got {weights.sum():.6f}")

    votes = indicators[list(weights.index)].to_numpy(dtype=float) @ weights.to_numpy(dtype=float)
    return ((votes > 0.5) | np.isclose(votes, 0.5)).astype(int)


class WeightedVoteEnsemble:
    """Accuracy-weighted vote over trained models with fixed weights."""

    def __init__(self, models: Dict[str, TrainedModel], weights: pd.Series):
        if not models:
            raise ValueError("An ensemble needs at least one model")
        classes = {model.classes for model in models.values()}
        if len(classes) != 1:
            raise EvaluationError(f"Models disagree on the class domain: {classes}")
        self.models = dict(models)
        self.weights = weights.copy()
        self.classes = classes.pop()

    def indicator_matrix(self, features: pd.DataFrame) -> pd.DataFrame:
        """0/1 prediction of every model, one column per model."""
        return pd.DataFrame({
            name: (model.predict(features) == self.classes[1]).astype(int)
            for name, model in self.models.items()
        }, index=features.index)

    def predict(self, features: pd.DataFrame) -> np.ndarray:
        indicator = weighted_vote(self.indicator_matrix(features), self.weights)
        return np.where(indicator == 1, self.classes[1], self.classes[0]).astype(object)


class EnsembleBuilder:
    """Builds and evaluates weighted-vote ensembles."""

    def __init__(self, config=config):
        self.config = config
        self.ensembles = {}
        self.ensemble_results = {}

    def create_weighted_ensemble(self, models: Dict[str, TrainedModel],
                                 weight_set: Dataset) -> WeightedVoteEnsemble:
        """Create an ensemble weighted by each model's accuracy on ``weight_set``."""
        weights = accuracy_weights(models, weight_set)
        logger.info(f"  Weights: {weights.round(4).to_dict()}")
        return WeightedVoteEnsemble(models, weights)

    def evaluate_ensemble(self, ensemble: WeightedVoteEnsemble, dataset: Dataset,
                          ensemble_name: str) -> Dict[str, Any]:
        """Evaluate ensemble performance."""
        predictions = ensemble.predict(dataset.features)
        evaluation = Evaluator(dataset.classes).evaluate(predictions, dataset.labels.to_numpy())

        logger.info(f"  {ensemble_name}: accuracy={evaluation.accuracy:.4f}, "
                    f"kappa={evaluation.kappa:.4f}, AUC={evaluation.auc:.4f}")

        return {
            'model_name': ensemble_name,
            'model': ensemble,
            'weights': ensemble.weights,
            'predictions': predictions,
            'evaluation': evaluation,
        }

    def diagnostic_ensemble(self, models: Dict[str, TrainedModel], dataset: Dataset,
                            ensemble_name: str = 'Diagnostic') -> Dict[str, Any]:
        """Weight by accuracy on ``dataset`` and classify that same dataset.

        The weights see the ground truth being scored, so the result describes
        how well the models agree on ``dataset`` rather than blind performance.
        """
        ensemble = self.create_weighted_ensemble(models, dataset)
        return self.evaluate_ensemble(ensemble, dataset, ensemble_name)

    def fixed_weight_ensemble(self, models: Dict[str, TrainedModel], weight_set: Dataset,
                              eval_set: Dataset, ensemble_name: str = 'Fixed_Weight') -> Dict[str, Any]:
        """Weight by accuracy on ``weight_set``, then classify unseen ``eval_set``."""
        ensemble = self.create_weighted_ensemble(models, weight_set)
        return self.evaluate_ensemble(ensemble, eval_set, ensemble_name)

    def create_all_ensembles(self, results: Dict[str, Dict], test: Dataset,
                             validation: Dataset, save: bool = False) -> Dict[str, Dict]:
        """Create and evaluate all ensemble variants."""
        logger.info("=" * 60)
        logger.info("ENSEMBLE MODEL CONSTRUCTION")
        logger.info("=" * 60)

        self.ensemble_results = {}
        models = {name: result['model'] for name, result in results.items() if 'model' in result}

        if len(models) < 2:
            logger.warning("  Need at least 2 models to create ensembles.")
            return self.ensemble_results

        runs = {
            'Diagnostic_Test': lambda: self.diagnostic_ensemble(models, test, 'Diagnostic_Test'),
            'Diagnostic_Validation': lambda: self.diagnostic_ensemble(
                models, validation, 'Diagnostic_Validation'),
            'Fixed_Weight_Validation': lambda: self.fixed_weight_ensemble(
                models, test, validation, 'Fixed_Weight_Validation'),
        }
        for ensemble_name, run in runs.items():
            result = run()
            self.ensemble_results[ensemble_name] = result
            self.ensembles[ensemble_name] = result['model']

        if save:
            self._save_ensemble_results()

        return self.ensemble_results

    def _save_ensemble_results(self):
        """Save ensemble results to disk."""
        if not self.ensemble_results:
            return

        os.makedirs(self.config.results_dir, exist_ok=True)
        results_dict = {
            name: {
                'weights': {k: float(v) for k, v in result['weights'].items()},
                **result['evaluation'].to_dict(),
            }
            for name, result in self.ensemble_results.items()
        }

        results_path = os.path.join(self.config.results_dir, "ensemble_results.json")
        with open(results_path, 'w') as f:
            json.dump(results_dict, f, indent=2)

        logger.info(f"Ensemble results saved to {results_path}")

    def get_best_ensemble(self) -> Tuple[str, WeightedVoteEnsemble]:
        """Get the best performing ensemble by accuracy."""
        if not self.ensemble_results:
            return None, None

        best_name = max(self.ensemble_results,
                        key=lambda name: self.ensemble_results[name]['evaluation'].accuracy)
        return best_name, self.ensemble_results[best_name]['model']

"""
Model training module for the breast-tumor subtype study.

Every model family exposes ``fit(training_set, hyperparameters)`` returning a
TrainedModel and ``predict(model, features)`` returning class labels, so the
evaluation and ensembling code never needs to know which family it handles.
"""

import json
import os
import time
import warnings
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from loguru import logger
from sklearn.exceptions import ConvergenceWarning
from sklearn.metrics.pairwise import euclidean_distances
from sklearn.model_selection import ParameterGrid, StratifiedKFold
from sklearn.neural_network import MLPClassifier
from sklearn.svm import SVC

from .config import config
from .dataset import Dataset
from .evaluation_metrics import EvaluationResult, Evaluator
from .exceptions import ConvergenceError, DataError
from .feature_engineering import StepwiseSelector, fit_logit, logit_aic_scorer, logit_design


@contextmanager
def convergence_guard(model_name: str, hyperparameters: Dict[str, Any]):
    """Turn scikit-learn convergence warnings into ConvergenceError."""
    with warnings.catch_warnings():
        warnings.simplefilter('error', ConvergenceWarning)
        try:
            yield
        except ConvergenceWarning as e:
            raise ConvergenceError(model_name, str(e), hyperparameters) from e


@dataclass(frozen=True)
class TrainedModel:
    """A fitted model tagged with its family and hyperparameters."""

    name: str
    family: 'ModelFamily'
    hyperparameters: Dict[str, Any]
    estimator: Any
    classes: Tuple[str, str]
    feature_names: Tuple[str, ...]

    def predict(self, features: pd.DataFrame) -> np.ndarray:
        return self.family.predict(self, features)

    def _aligned(self, features: pd.DataFrame) -> pd.DataFrame:
        missing = [f for f in self.feature_names if f not in features.columns]
        if missing:
            raise DataError(f"{self.name}: features missing from input: {missing[:10]}")
        return features[list(self.feature_names)]

    def _decode(self, indicator: np.ndarray) -> np.ndarray:
        return np.where(np.asarray(indicator) == 1, self.classes[1], self.classes[0]).astype(object)


class ModelFamily(ABC):
    """Common interface of the model families."""

    name: str = ''

    def __init__(self, random_state: int = 42):
        self.random_state = random_state

    @abstractmethod
    def fit(self, training_set: Dataset, hyperparameters: Dict[str, Any]) -> TrainedModel:
        """Fit on ``training_set`` with fixed hyperparameters."""

    @abstractmethod
    def predict(self, model: TrainedModel, features: pd.DataFrame) -> np.ndarray:
        """Predict class labels for the rows of ``features``."""

    def _trained(self, training_set: Dataset, hyperparameters, estimator,
                 feature_names=None) -> TrainedModel:
        if feature_names is None:
            feature_names = training_set.feature_names
        return TrainedModel(
            name=self.name,
            family=self,
            hyperparameters=dict(hyperparameters),
            estimator=estimator,
            classes=training_set.classes,
            feature_names=tuple(feature_names),
        )

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"


class KNNFamily(ModelFamily):
    """k-nearest neighbours by Euclidean distance.

    Fitting only stores the training vectors. A vote tie goes to the class of
    the nearest neighbour; equal distances keep training-set order.
    """

    name = 'kNN'

    def fit(self, training_set: Dataset, hyperparameters: Dict[str, Any]) -> TrainedModel:
        k = int(hyperparameters['k'])
        if not 1 <= k <= len(training_set):
            raise DataError(f"kNN: k={k} is invalid for {len(training_set)} training samples")
        estimator = {
            'X': training_set.features.to_numpy(dtype=float),
            'y': training_set.indicator(),
        }
        return self._trained(training_set, {'k': k}, estimator)

    def predict(self, model: TrainedModel, features: pd.DataFrame) -> np.ndarray:
        k = model.hyperparameters['k']
        query = model._aligned(features).to_numpy(dtype=float)
        distances = euclidean_distances(query, model.estimator['X'])
        nearest = np.argsort(distances, axis=1, kind='stable')[:, :k]
        neighbour_labels = model.estimator['y'][nearest]
        votes = neighbour_labels.sum(axis=1)
        indicator = np.where(2 * votes > k, 1,
                             np.where(2 * votes < k, 0, neighbour_labels[:, 0]))
        return model._decode(indicator)


class LogisticRegressionFamily(ModelFamily):
    """Logistic regression with bidirectional stepwise AIC feature selection."""

    name = 'Logistic Regression'

    def __init__(self, random_state: int = 42, max_iter: int = 100, stepwise: bool = True):
        super().__init__(random_state)
        self.max_iter = max_iter
        self.stepwise = stepwise

    def fit(self, training_set: Dataset, hyperparameters: Dict[str, Any]) -> TrainedModel:
        features = training_set.features
        y = training_set.indicator()
        stepwise = hyperparameters.get('stepwise', self.stepwise)

        if stepwise:
            # The full model must fit; failures of candidate subsets only skip them.
            selector = StepwiseSelector(logit_aic_scorer(features, y, max_iter=self.max_iter))
            selection = selector.select(training_set.feature_names)
            selected = selection.selected
            logger.info(f"    Stepwise AIC kept {len(selected)}/{features.shape[1]} features "
                        f"in {len(selection.history) - 1} steps (AIC={selection.score:.2f})")
        else:
            selected = tuple(training_set.feature_names)

        result = fit_logit(features[list(selected)], y, max_iter=self.max_iter)
        params = {'stepwise': stepwise, 'selected_features': list(selected), 'aic': float(result.aic)}
        result.remove_data()
        return self._trained(training_set, params, result, feature_names=selected)

    def predict_proba(self, model: TrainedModel, features: pd.DataFrame) -> np.ndarray:
        """Probability of the second class."""
        design = logit_design(model._aligned(features))
        return np.asarray(model.estimator.predict(design), dtype=float)

    def predict(self, model: TrainedModel, features: pd.DataFrame) -> np.ndarray:
        probabilities = self.predict_proba(model, features)
        return model._decode((probabilities >= 0.5).astype(int))


class SVMFamily(ModelFamily):
    """Soft-margin support vector machine with a linear or RBF kernel."""

    def __init__(self, kernel: str = 'linear', random_state: int = 42, max_iter: int = -1):
        super().__init__(random_state)
        if kernel not in ('linear', 'rbf'):
            raise ValueError(f"Unknown SVM kernel: {kernel}")
        self.kernel = kernel
        self.max_iter = max_iter
        self.name = 'SVM Linear' if kernel == 'linear' else 'SVM Radial'

    def fit(self, training_set: Dataset, hyperparameters: Dict[str, Any]) -> TrainedModel:
        params = {'C': float(hyperparameters['C'])}
        if self.kernel == 'rbf':
            params['gamma'] = float(hyperparameters['gamma'])

        svc = SVC(kernel=self.kernel, max_iter=self.max_iter,
                  random_state=self.random_state, **params)
        with convergence_guard(self.name, params):
            svc.fit(training_set.features.to_numpy(dtype=float), training_set.indicator())
        return self._trained(training_set, params, svc)

    def predict(self, model: TrainedModel, features: pd.DataFrame) -> np.ndarray:
        indicator = model.estimator.predict(model._aligned(features).to_numpy(dtype=float))
        return model._decode(indicator)


class NeuralNetFamily(ModelFamily):
    """Single-hidden-layer network minimizing cross-entropy."""

    name = 'ANN'

    def __init__(self, random_state: int = 42, max_iter: int = 1000, weight_decay: float = 0.0):
        super().__init__(random_state)
        self.max_iter = max_iter
        self.weight_decay = weight_decay

    def fit(self, training_set: Dataset, hyperparameters: Dict[str, Any]) -> TrainedModel:
        params = {'hidden_units': int(hyperparameters['hidden_units'])}
        mlp = MLPClassifier(
            hidden_layer_sizes=(params['hidden_units'],),
            activation='logistic',
            solver='lbfgs',
            alpha=self.weight_decay,
            max_iter=self.max_iter,
            random_state=self.random_state,
        )
        with convergence_guard(self.name, params):
            mlp.fit(training_set.features.to_numpy(dtype=float), training_set.indicator())
        return self._trained(training_set, params, mlp)

    def predict(self, model: TrainedModel, features: pd.DataFrame) -> np.ndarray:
        indicator = model.estimator.predict(model._aligned(features).to_numpy(dtype=float))
        return model._decode(indicator)


def holdout_scorer(family: ModelFamily, train: Dataset,
                   holdout: Dataset) -> Callable[[Dict[str, Any]], Dict[str, float]]:
    """Score a configuration by fitting on ``train`` and evaluating on ``holdout``."""
    evaluator = Evaluator(train.classes)

    def score(params: Dict[str, Any]) -> Dict[str, float]:
        model = family.fit(train, params)
        result = evaluator.evaluate(model.predict(holdout.features), holdout.labels.to_numpy())
        return {'accuracy': result.accuracy, 'kappa': result.kappa, 'auc': result.auc}

    return score


def cross_validation_scorer(family: ModelFamily, train: Dataset, n_folds: int,
                            random_state: int) -> Callable[[Dict[str, Any]], Dict[str, float]]:
    """Score a configuration by stratified k-fold cross-validation."""
    evaluator = Evaluator(train.classes)
    cv = StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    ids = np.asarray(train.sample_ids)
    folds = list(cv.split(ids, train.indicator()))

    def score(params: Dict[str, Any]) -> Dict[str, float]:
        fold_scores = []
        for train_idx, val_idx in folds:
            fold_train = train.subset(ids[train_idx])
            fold_val = train.subset(ids[val_idx])
            model = family.fit(fold_train, params)
            result = evaluator.evaluate(model.predict(fold_val.features), fold_val.labels.to_numpy())
            fold_scores.append([result.accuracy, result.kappa, result.auc])
        means = np.nanmean(np.array(fold_scores, dtype=float), axis=0)
        return {'accuracy': float(means[0]), 'kappa': float(means[1]), 'auc': float(means[2])}

    return score


def _score_configuration(score_fn, params):
    try:
        return params, score_fn(params), None
    except ConvergenceError as e:
        return params, None, str(e)


@dataclass
class SweepResult:
    """Per-configuration scores of a hyperparameter sweep."""

    model_name: str
    scores: pd.DataFrame
    failures: List[Dict[str, Any]] = field(default_factory=list)
    best_params: Optional[Dict[str, Any]] = None
    best_score: float = float('nan')


def run_sweep(model_name: str, grid: List[Dict[str, Any]],
              score_fn: Callable[[Dict[str, Any]], Dict[str, float]],
              n_jobs: int = 1) -> SweepResult:
    """Score every configuration and pick the most accurate one.

    Configurations that fail to converge are recorded and left out. Accuracy
    ties go to the configuration listed first in ``grid``.
    """
    outcomes = Parallel(n_jobs=n_jobs)(
        delayed(_score_configuration)(score_fn, params) for params in grid
    )

    rows, scored_params, failures = [], [], []
    for params, scores, error in outcomes:
        if error is not None:
            logger.warning(f"    {model_name} {params} excluded: {error}")
            failures.append({'params': params, 'error': error})
            continue
        rows.append({**params, **scores})
        scored_params.append(params)

    if not rows:
        raise ConvergenceError(model_name, f"all {len(grid)} configurations failed to converge")

    table = pd.DataFrame(rows)
    best = int(table['accuracy'].to_numpy().argmax())

    return SweepResult(
        model_name=model_name,
        scores=table,
        failures=failures,
        best_params=dict(scored_params[best]),
        best_score=float(table['accuracy'].iloc[best]),
    )


class ModelTrainer:
    """Handles hyperparameter sweeps, final fits and per-model evaluation."""

    def __init__(self, config=config):
        self.config = config
        self.results = {}
        self.failures = {}
        self.best_models = {}

    def get_model_definitions(self) -> Dict[str, Dict]:
        """Get model families, their sweep grids and selection protocol."""
        cfg = self.config
        seed = cfg.random_state

        model_definitions = {
            'kNN': {
                'family': KNNFamily(random_state=seed),
                'params': list(ParameterGrid({'k': list(cfg.knn_k_values)})),
                'selection': 'holdout',
            },
            'Logistic Regression': {
                'family': LogisticRegressionFamily(random_state=seed, max_iter=cfg.max_iter),
                'params': [{'stepwise': True}],
                'selection': 'stepwise',
            },
            'SVM Linear': {
                'family': SVMFamily('linear', random_state=seed, max_iter=cfg.svm_max_iter),
                'params': list(ParameterGrid({'C': list(cfg.svm_costs)})),
                'selection': 'cv',
            },
            'SVM Radial': {
                'family': SVMFamily('rbf', random_state=seed, max_iter=cfg.svm_max_iter),
                'params': list(ParameterGrid({'C': list(cfg.svm_costs),
                                              'gamma': list(cfg.svm_gammas)})),
                'selection': 'cv',
            },
            'ANN': {
                'family': NeuralNetFamily(random_state=seed, max_iter=cfg.max_iter,
                                          weight_decay=cfg.ann_weight_decay),
                'params': list(ParameterGrid({'hidden_units': list(cfg.ann_hidden_units)})),
                'selection': 'cv',
            },
        }

        return model_definitions

    def tune_hyperparameters(self, model_name: str, definition: Dict[str, Any],
                             train: Dataset, holdout: Dataset) -> Optional[SweepResult]:
        """Run the sweep for one family; None when the family has no sweep."""
        family = definition['family']
        selection = definition['selection']
        if selection == 'stepwise':
            return None

        if selection == 'holdout':
            score_fn = holdout_scorer(family, train, holdout)
            logger.info(f"  Sweeping {model_name} over {len(definition['params'])} "
                        f"configurations on the held-out partition...")
        elif selection == 'cv':
            score_fn = cross_validation_scorer(family, train, self.config.cv_folds,
                                               self.config.random_state)
            logger.info(f"  Sweeping {model_name} over {len(definition['params'])} "
                        f"configurations with {self.config.cv_folds}-fold cross-validation...")
        else:
            raise ValueError(f"Unknown selection protocol: {selection}")

        start_time = time.time()
        sweep = run_sweep(model_name, definition['params'], score_fn, n_jobs=self.config.n_jobs)
        logger.info(f"    Best accuracy: {sweep.best_score:.4f} with {sweep.best_params} "
                    f"({len(sweep.failures)} excluded, {time.time() - start_time:.2f}s)")
        return sweep

    def train_final_model(self, family: ModelFamily, best_params: Dict[str, Any],
                          train: Dataset) -> TrainedModel:
        """Train final model with best parameters."""
        return family.fit(train, best_params)

    def evaluate_model(self, model: TrainedModel, dataset: Dataset) -> EvaluationResult:
        """Evaluate model performance on one partition."""
        evaluator = Evaluator(dataset.classes)
        return evaluator.evaluate(model.predict(dataset.features), dataset.labels.to_numpy())

    def save_model(self, model: TrainedModel, model_name: str):
        """Save trained model to disk."""
        os.makedirs(self.config.models_dir, exist_ok=True)
        model_path = os.path.join(self.config.models_dir, f"{model_name.replace(' ', '_')}.pkl")
        joblib.dump(model, model_path)
        logger.info(f"    Model saved to {model_path}")

        model_info = {
            'model_name': model_name,
            'hyperparameters': model.hyperparameters,
            'feature_names': list(model.feature_names),
            'classes': list(model.classes),
            'timestamp': time.strftime("%Y-%m-%d %H:%M:%S"),
        }
        info_path = os.path.join(self.config.models_dir, f"{model_name.replace(' ', '_')}_info.json")
        with open(info_path, 'w') as f:
            json.dump(model_info, f, indent=2, default=str)

    def train_all_models(self, train: Dataset, test: Dataset, validation: Dataset,
                         save: bool = False) -> Dict[str, Dict[str, Any]]:
        """Select, fit and evaluate every configured model family."""
        logger.info("=" * 60)
        logger.info("MODEL TRAINING PIPELINE")
        logger.info("=" * 60)

        model_definitions = self.get_model_definitions()
        models_to_train = {
            name: definition for name, definition in model_definitions.items()
            if name in self.config.selected_models
        }
        logger.info(f"Training {len(models_to_train)} models: {list(models_to_train)}")

        self.results = {}
        self.failures = {}
        for model_name, definition in models_to_train.items():
            logger.info(f"Training: {model_name}")

            try:
                sweep = self.tune_hyperparameters(model_name, definition, train, test)
                best_params = sweep.best_params if sweep is not None else definition['params'][0]
                final_model = self.train_final_model(definition['family'], best_params, train)
            except ConvergenceError as e:
                logger.error(f"  {model_name} skipped: {e}")
                self.failures[model_name] = str(e)
                continue

            test_results = self.evaluate_model(final_model, test)
            validation_results = self.evaluate_model(final_model, validation)

            self.results[model_name] = {
                'model': final_model,
                'hyperparameters': final_model.hyperparameters,
                'sweep': sweep,
                'test': test_results,
                'validation': validation_results,
            }

            if save:
                self.save_model(final_model, model_name)

            logger.info(f"  {model_name}: test accuracy={test_results.accuracy:.4f}, "
                        f"kappa={test_results.kappa:.4f}, AUC={test_results.auc:.4f}; "
                        f"validation accuracy={validation_results.accuracy:.4f}")

        self._identify_best_model()
        return self.results

    def _identify_best_model(self):
        """Identify the best model by validation accuracy."""
        if not self.results:
            return

        best_name = max(self.results, key=lambda name: self.results[name]['validation'].accuracy)
        self.best_models['best_by_accuracy'] = {
            'name': best_name,
            'score': self.results[best_name]['validation'].accuracy,
            'model': self.results[best_name]['model'],
        }
        logger.info(f"BEST MODEL: {best_name} "
                    f"(validation accuracy {self.best_models['best_by_accuracy']['score']:.4f})")

    def save_all_results(self):
        """Save metrics and sweep tables to disk."""
        os.makedirs(self.config.results_dir, exist_ok=True)

        results_dict = {}
        for model_name, result in self.results.items():
            results_dict[model_name] = {
                'hyperparameters': result['hyperparameters'],
                'test': result['test'].to_dict(),
                'validation': result['validation'].to_dict(),
            }
            if result['sweep'] is not None:
                sweep_path = os.path.join(self.config.results_dir,
                                          f"sweep_{model_name.replace(' ', '_')}.csv")
                result['sweep'].scores.to_csv(sweep_path, index=False)
                results_dict[model_name]['excluded_configurations'] = result['sweep'].failures
        for model_name, error in self.failures.items():
            results_dict[model_name] = {'error': error}

        results_path = os.path.join(self.config.results_dir, "all_model_results.json")
        with open(results_path, 'w') as f:
            json.dump(results_dict, f, indent=2, default=str)

        summary = Evaluator.summarize({name: r['validation'] for name, r in self.results.items()})
        summary_path = os.path.join(self.config.results_dir, "model_performance_summary.csv")
        summary.to_csv(summary_path, index=False)

        logger.info(f"All results saved to {self.config.results_dir}/")

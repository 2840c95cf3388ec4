"""
Feature selection module for the breast-tumor subtype study.

Bidirectional stepwise selection: starting from a feature subset, every step
tries removing each selected feature and adding each unselected one, applies
the single change with the best score and stops once no change improves it.
The result is a local optimum. Equal scores are resolved by feature name so
the search path is reproducible.
"""

import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning as StatsmodelsConvergenceWarning,
    PerfectSeparationError,
    PerfectSeparationWarning,
)
from loguru import logger

from .exceptions import ConvergenceError


def logit_design(features: pd.DataFrame) -> pd.DataFrame:
    """Prepend an intercept column."""
    design = features.astype(float).copy()
    design.insert(0, 'const', 1.0)
    return design


def fit_logit(features: pd.DataFrame, y: np.ndarray, max_iter: int = 100):
    """Maximum-likelihood logistic regression by Newton-Raphson (IRLS)."""
    context = {'n_features': features.shape[1]}
    with warnings.catch_warnings():
        warnings.simplefilter('error', PerfectSeparationWarning)
        warnings.simplefilter('ignore', StatsmodelsConvergenceWarning)
        try:
            result = sm.Logit(np.asarray(y, dtype=float), logit_design(features)).fit(
                method='newton', maxiter=max_iter, disp=0
            )
        except (np.linalg.LinAlgError, PerfectSeparationError, PerfectSeparationWarning) as e:
            raise ConvergenceError('Logistic Regression', str(e), context) from e

    if not result.mle_retvals.get('converged', False):
        raise ConvergenceError('Logistic Regression',
                               f"Newton iterations did not converge within {max_iter} steps",
                               context)
    return result


def logit_aic_scorer(features: pd.DataFrame, y: np.ndarray,
                     max_iter: int = 100) -> Callable[[Tuple[str, ...]], float]:
    """Score a feature subset by the AIC of its logistic regression fit."""

    def score(subset: Tuple[str, ...]) -> float:
        return float(fit_logit(features[list(subset)], y, max_iter=max_iter).aic)

    return score


@dataclass
class StepwiseResult:
    selected: Tuple[str, ...]
    score: float
    history: List[Dict] = field(default_factory=list)


class StepwiseSelector:
    """Greedy add-or-remove-one feature search minimizing ``score_fn``."""

    def __init__(self, score_fn: Callable[[Tuple[str, ...]], float], max_steps: Optional[int] = None):
        self.score_fn = score_fn
        self.max_steps = max_steps
        self._cache = {}

    def _score(self, subset: Tuple[str, ...]) -> float:
        key = frozenset(subset)
        if key not in self._cache:
            self._cache[key] = self.score_fn(subset)
        return self._cache[key]

    def _candidates(self, features: Sequence[str], current: Tuple[str, ...]):
        selected = set(current)
        for name in sorted(selected):
            yield 'remove', name, tuple(f for f in features if f in selected and f != name)
        for name in sorted(set(features) - selected):
            yield 'add', name, tuple(f for f in features if f in selected or f == name)

    def select(self, features: Sequence[str],
               initial: Optional[Sequence[str]] = None) -> StepwiseResult:
        features = list(features)
        start = set(features if initial is None else initial)
        current = tuple(f for f in features if f in start)
        current_score = self._score(current)
        result = StepwiseResult(selected=current, score=current_score,
                                history=[{'step': 0, 'action': 'start', 'feature': None,
                                          'score': current_score}])

        step = 0
        while self.max_steps is None or step < self.max_steps:
            scored = []
            for action, name, subset in self._candidates(features, current):
                try:
                    scored.append((self._score(subset), name, action, subset))
                except ConvergenceError as e:
                    logger.warning(f"    Skipping {action} '{name}': {e}")

            if not scored:
                break
            best_score, name, action, subset = min(scored, key=lambda c: (c[0], c[1], c[2]))
            if not best_score < current_score:
                break

            step += 1
            current, current_score = subset, best_score
            result.history.append({'step': step, 'action': action, 'feature': name,
                                   'score': best_score})
            logger.debug(f"    Step {step}: {action} {name} -> {best_score:.3f}")

        result.selected = current
        result.score = current_score
        return result

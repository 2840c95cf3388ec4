"""
Evaluation metrics module for the breast-tumor subtype study.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix, roc_auc_score
from loguru import logger

from .exceptions import EvaluationError


@dataclass(frozen=True)
class ConfusionMatrix:
    """2x2 table of (predicted, actual) counts in a fixed class order.

    The second class is treated as the positive class.
    """

    classes: Tuple[str, str]
    counts: Tuple[Tuple[int, int], Tuple[int, int]]  # counts[predicted][actual]

    @classmethod
    def from_labels(cls, predicted: Sequence, actual: Sequence,
                    classes: Tuple[str, str]) -> 'ConfusionMatrix':
        # sklearn puts actual on rows and predicted on columns
        table = confusion_matrix(actual, predicted, labels=list(classes)).T
        counts = tuple(tuple(int(v) for v in row) for row in table)
        return cls(classes=tuple(classes), counts=counts)

    def count(self, predicted: str, actual: str) -> int:
        return self.counts[self.classes.index(predicted)][self.classes.index(actual)]

    @property
    def tn(self) -> int:
        return self.counts[0][0]

    @property
    def fn(self) -> int:
        return self.counts[0][1]

    @property
    def fp(self) -> int:
        return self.counts[1][0]

    @property
    def tp(self) -> int:
        return self.counts[1][1]

    @property
    def total(self) -> int:
        return self.tp + self.tn + self.fp + self.fn

    def accuracy(self) -> float:
        if self.total == 0:
            return float('nan')
        return (self.tp + self.tn) / self.total

    def kappa(self) -> float:
        """Unweighted Cohen's kappa from the observed and marginal agreement."""
        n = self.total
        if n == 0:
            return float('nan')
        observed = (self.tp + self.tn) / n
        expected = ((self.tp + self.fp) * (self.tp + self.fn)
                    + (self.tn + self.fn) * (self.tn + self.fp)) / n ** 2
        if np.isclose(expected, 1.0):
            return float('nan')
        return (observed - expected) / (1 - expected)

    def as_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [list(row) for row in self.counts],
            index=pd.Index(self.classes, name='predicted'),
            columns=pd.Index(self.classes, name='actual'),
        )


@dataclass(frozen=True)
class EvaluationResult:
    """Metric triple plus the confusion matrix it was computed from."""

    accuracy: float
    kappa: float
    auc: float
    confusion_matrix: ConfusionMatrix

    def to_dict(self) -> Dict[str, Any]:
        cm = self.confusion_matrix
        return {
            'accuracy': self.accuracy,
            'kappa': self.kappa,
            'auc': self.auc,
            'confusion_matrix': [list(row) for row in cm.counts],
            'classes': list(cm.classes),
        }


class Evaluator:
    """Computes accuracy, Cohen's kappa and ROC AUC for two-class predictions."""

    def __init__(self, classes: Tuple[str, str]):
        if len(classes) != 2 or classes[0] == classes[1]:
            raise ValueError(f"Expected two distinct classes, got {classes}")
        self.classes = tuple(classes)

    def _check_labels(self, labels, name: str) -> np.ndarray:
        labels = np.asarray(labels, dtype=object)
        unknown = set(labels.tolist()) - set(self.classes)
        if unknown:
            raise EvaluationError(f"{name} labels outside {self.classes}: {sorted(map(str, unknown))}")
        return labels

    def evaluate(self, predicted: Sequence, actual: Sequence,
                 scores: Optional[Sequence[float]] = None) -> EvaluationResult:
        """Build the confusion matrix and metric triple.

        AUC is computed from ``scores`` when given, otherwise from the hard
        predicted labels, where it equals (sensitivity + specificity) / 2.
        """
        if len(predicted) != len(actual):
            raise EvaluationError(f"Predicted ({len(predicted)}) and actual ({len(actual)}) "
                                  f"label vectors differ in length")
        if len(actual) == 0:
            raise EvaluationError("Cannot evaluate empty label vectors")
        predicted = self._check_labels(predicted, 'Predicted')
        actual = self._check_labels(actual, 'Actual')

        cm = ConfusionMatrix.from_labels(predicted, actual, self.classes)

        actual_indicator = (actual == self.classes[1]).astype(int)
        if scores is None:
            scores = (predicted == self.classes[1]).astype(float)
        elif len(scores) != len(actual):
            raise EvaluationError(f"Scores ({len(scores)}) and actual ({len(actual)}) "
                                  f"vectors differ in length")

        if len(np.unique(actual_indicator)) < 2:
            logger.warning("Only one class present in ground truth; AUC is undefined")
            auc = float('nan')
        else:
            auc = float(roc_auc_score(actual_indicator, np.asarray(scores, dtype=float)))

        return EvaluationResult(
            accuracy=float(cm.accuracy()),
            kappa=float(cm.kappa()),
            auc=auc,
            confusion_matrix=cm,
        )

    @staticmethod
    def summarize(results: Dict[str, EvaluationResult]) -> pd.DataFrame:
        """Tabulate metric triples, best accuracy first."""
        rows = [
            {'model': name, 'accuracy': r.accuracy, 'kappa': r.kappa, 'auc': r.auc}
            for name, r in results.items()
        ]
        summary = pd.DataFrame(rows, columns=['model', 'accuracy', 'kappa', 'auc'])
        return summary.sort_values('accuracy', ascending=False, kind='stable').reset_index(drop=True)

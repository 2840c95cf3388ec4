"""
Tests for evaluation metrics module.
"""

import numpy as np
import pytest
from sklearn.metrics import cohen_kappa_score

from brca_subtype.evaluation_metrics import ConfusionMatrix, EvaluationResult, Evaluator
from brca_subtype.exceptions import EvaluationError

from conftest import CLASSES, DUCTAL, LOBULAR


class TestEvaluator:
    """Test accuracy, kappa and AUC computation."""

    @pytest.fixture
    def evaluator(self):
        return Evaluator(CLASSES)

    @pytest.fixture
    def imbalanced_truth(self):
        return np.array([DUCTAL] * 90 + [LOBULAR] * 10, dtype=object)

    def test_perfect_predictions(self, evaluator, imbalanced_truth):
        result = evaluator.evaluate(imbalanced_truth.copy(), imbalanced_truth)

        assert result.accuracy == 1.0
        assert result.kappa == pytest.approx(1.0)
        assert result.auc == pytest.approx(1.0)

    def test_all_majority_predictions(self, evaluator, imbalanced_truth):
        """90/10 test set predicted all-majority: accuracy 0.90, kappa 0.0, AUC 0.5."""
        predicted = np.array([DUCTAL] * 100, dtype=object)
        result = evaluator.evaluate(predicted, imbalanced_truth)

        assert result.accuracy == pytest.approx(0.90)
        assert result.kappa == pytest.approx(0.0)
        assert result.auc == pytest.approx(0.5)

    def test_random_predictions_have_kappa_near_zero(self, evaluator):
        rng = np.random.default_rng(0)
        actual = np.array([DUCTAL, LOBULAR] * 5000, dtype=object)
        predicted = rng.choice(np.array(CLASSES, dtype=object), size=actual.size)

        result = evaluator.evaluate(predicted, actual)
        assert abs(result.kappa) < 0.05
        assert result.auc == pytest.approx(0.5, abs=0.03)

    def test_kappa_matches_sklearn(self, evaluator):
        rng = np.random.default_rng(1)
        actual = rng.choice(np.array(CLASSES, dtype=object), size=300, p=[0.3, 0.7])
        predicted = np.where(rng.random(300) < 0.8, actual, rng.choice(np.array(CLASSES, dtype=object), size=300))

        result = evaluator.evaluate(predicted, actual)
        assert result.kappa == pytest.approx(cohen_kappa_score(actual, predicted))

    def test_hard_label_auc_is_balanced_accuracy(self, evaluator):
        actual = np.array([LOBULAR] * 4 + [DUCTAL] * 6, dtype=object)
        predicted = np.array([LOBULAR, LOBULAR, LOBULAR, DUCTAL,
                              DUCTAL, DUCTAL, DUCTAL, DUCTAL, LOBULAR, LOBULAR], dtype=object)

        result = evaluator.evaluate(predicted, actual)
        sensitivity = 4 / 6  # second class is positive
        specificity = 3 / 4
        assert result.auc == pytest.approx((sensitivity + specificity) / 2)

    def test_scores_used_for_auc_when_given(self, evaluator):
        actual = np.array([LOBULAR, LOBULAR, DUCTAL, DUCTAL], dtype=object)
        predicted = np.array([LOBULAR, DUCTAL, DUCTAL, DUCTAL], dtype=object)

        result = evaluator.evaluate(predicted, actual, scores=[0.1, 0.6, 0.7, 0.9])
        assert result.auc == pytest.approx(1.0)
        assert result.accuracy == pytest.approx(0.75)

    def test_confusion_matrix_orientation(self, evaluator):
        actual = np.array([LOBULAR, LOBULAR, DUCTAL, DUCTAL, DUCTAL], dtype=object)
        predicted = np.array([LOBULAR, DUCTAL, DUCTAL, DUCTAL, LOBULAR], dtype=object)

        cm = evaluator.evaluate(predicted, actual).confusion_matrix
        assert cm.count(predicted=LOBULAR, actual=LOBULAR) == 1
        assert cm.count(predicted=DUCTAL, actual=LOBULAR) == 1
        assert cm.count(predicted=LOBULAR, actual=DUCTAL) == 1
        assert cm.count(predicted=DUCTAL, actual=DUCTAL) == 2
        assert (cm.tn, cm.fn, cm.fp, cm.tp) == (1, 1, 1, 2)
        assert cm.as_frame().loc[DUCTAL, LOBULAR] == 1

    def test_length_mismatch(self, evaluator):
        with pytest.raises(EvaluationError, match='length'):
            evaluator.evaluate([DUCTAL, LOBULAR], [DUCTAL])

    def test_out_of_domain_labels(self, evaluator):
        with pytest.raises(EvaluationError, match='Mucinous'):
            evaluator.evaluate([DUCTAL, 'Mucinous'], [DUCTAL, LOBULAR])

    def test_single_class_truth_has_undefined_auc(self, evaluator):
        result = evaluator.evaluate([DUCTAL, LOBULAR, DUCTAL], [DUCTAL, DUCTAL, DUCTAL])

        assert result.accuracy == pytest.approx(2 / 3)
        assert np.isnan(result.auc)

    def test_summarize_sorts_by_accuracy(self):
        cm = ConfusionMatrix(classes=CLASSES, counts=((1, 0), (0, 1)))
        results = {
            'kNN': EvaluationResult(accuracy=0.8, kappa=0.5, auc=0.7, confusion_matrix=cm),
            'ANN': EvaluationResult(accuracy=0.9, kappa=0.6, auc=0.8, confusion_matrix=cm),
        }

        summary = Evaluator.summarize(results)
        assert list(summary['model']) == ['ANN', 'kNN']
        assert list(summary.columns) == ['model', 'accuracy', 'kappa', 'auc']

    def test_to_dict_exposes_confusion_matrix(self, evaluator, imbalanced_truth):
        result = evaluator.evaluate(imbalanced_truth, imbalanced_truth).to_dict()

        assert result['classes'] == list(CLASSES)
        assert result['confusion_matrix'] == [[10, 0], [0, 90]]


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

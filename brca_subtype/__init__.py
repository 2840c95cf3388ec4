"""
Breast-tumor subtype (ductal vs. lobular) classification pipeline
"""

__version__ = "1.0.0"

from .config import Config
from .dataset import Dataset
from .exceptions import PipelineError, DataError, EvaluationError, ConvergenceError
from .data_preprocessing import DataPreprocessor, OutlierScaler
from .data_splitting import StratifiedSplitter, Partitions
from .resampling import MinorityOversampler
from .feature_engineering import StepwiseSelector
from .model_training import (
    ModelTrainer,
    ModelFamily,
    TrainedModel,
    KNNFamily,
    LogisticRegressionFamily,
    SVMFamily,
    NeuralNetFamily,
)
from .evaluation_metrics import Evaluator, ConfusionMatrix, EvaluationResult
from .ensemble_methods import EnsembleBuilder, WeightedVoteEnsemble, weighted_vote

__all__ = [
    "Config",
    "Dataset",
    "PipelineError",
    "DataError",
    "EvaluationError",
    "ConvergenceError",
    "DataPreprocessor",
    "OutlierScaler",
    "StratifiedSplitter",
    "Partitions",
    "MinorityOversampler",
    "StepwiseSelector",
    "ModelTrainer",
    "ModelFamily",
    "TrainedModel",
    "KNNFamily",
    "LogisticRegressionFamily",
    "SVMFamily",
    "NeuralNetFamily",
    "Evaluator",
    "ConfusionMatrix",
    "EvaluationResult",
    "EnsembleBuilder",
    "WeightedVoteEnsemble",
    "weighted_vote",
]

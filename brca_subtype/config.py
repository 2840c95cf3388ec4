"""
Configuration settings for the breast-tumor subtype classification study.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Tuple
import yaml

AVAILABLE_MODELS = (
    'kNN',
    'Logistic Regression',
    'SVM Linear',
    'SVM Radial',
    'ANN',
)


@dataclass
class Config:
    """Main configuration class"""

    # Paths
    data_path: str = 'data/raw/brca_expression.csv'
    results_dir: str = 'results/ml_results'
    models_dir: str = 'models/saved_models'
    logs_dir: str = 'results/logs'

    # Input schema (long format: one row per sample/gene pair)
    sample_column: str = 'sample_id'
    gene_column: str = 'gene'
    value_column: str = 'value'
    label_column: str = 'cancer_type'
    class_order: Optional[Tuple[str, str]] = None

    # Random seed
    random_state: int = 42

    # Data splitting (train, test, validation)
    split_proportions: Tuple[float, float, float] = (0.6, 0.2, 0.2)

    # Preprocessing
    outlier_threshold: float = 3.0

    # Class imbalance
    smote_k_neighbors: int = 5
    smote_target_count: Optional[int] = None  # None matches the majority count

    # Models to train
    selected_models: List[str] = field(default_factory=lambda: list(AVAILABLE_MODELS))

    # Hyperparameter sweeps
    knn_k_values: List[int] = field(default_factory=lambda: list(range(1, 16)))
    svm_costs: List[float] = field(default_factory=lambda: [0.01, 0.1, 1, 10, 100])
    svm_gammas: List[float] = field(default_factory=lambda: [0.001, 0.01, 0.1, 1])
    ann_hidden_units: List[int] = field(default_factory=lambda: list(range(1, 11)))
    ann_weight_decay: float = 0.0
    cv_folds: int = 10
    max_iter: int = 1000  # logistic regression and ANN optimizer cap
    svm_max_iter: int = 1000000
    n_jobs: int = 1

    def validate(self):
        """Check settings for consistency."""
        if len(self.split_proportions) != 3:
            raise ValueError("split_proportions must hold (train, test, validation)")
        if any(p <= 0 for p in self.split_proportions):
            raise ValueError(f"split proportions must be positive: {self.split_proportions}")
        if abs(sum(self.split_proportions) - 1.0) > 1e-9:
            raise ValueError(f"split proportions must sum to 1.0: {self.split_proportions}")

        unknown = set(self.selected_models) - set(AVAILABLE_MODELS)
        if unknown:
            raise ValueError(f"Unknown models: {sorted(unknown)}")

        for name in ('knn_k_values', 'svm_costs', 'svm_gammas', 'ann_hidden_units'):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")

        if self.class_order is not None and len(set(self.class_order)) != 2:
            raise ValueError(f"class_order must name two distinct classes: {self.class_order}")
        if self.cv_folds < 2:
            raise ValueError("cv_folds must be at least 2")
        if self.smote_k_neighbors < 1:
            raise ValueError("smote_k_neighbors must be at least 1")
        if self.outlier_threshold <= 0:
            raise ValueError("outlier_threshold must be positive")

    def create_directories(self):
        """Create output directories."""
        for directory in (self.results_dir, self.models_dir, self.logs_dir):
            os.makedirs(directory, exist_ok=True)

    @classmethod
    def from_yaml(cls, yaml_path: str):
        """Load configuration from YAML file"""
        with open(yaml_path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}
        for key in ('split_proportions', 'class_order'):
            if config_dict.get(key) is not None:
                config_dict[key] = tuple(config_dict[key])
        return cls(**config_dict)

    def to_yaml(self, yaml_path: str):
        """Save configuration to YAML file"""
        directory = os.path.dirname(yaml_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        config_dict = asdict(self)
        for key in ('split_proportions', 'class_order'):
            if config_dict[key] is not None:
                config_dict[key] = list(config_dict[key])
        with open(yaml_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False)


config = Config()

"""
Class imbalance correction by synthetic minority oversampling (SMOTE).
"""

from typing import Optional

import pandas as pd
from imblearn.over_sampling import SMOTE
from loguru import logger

from .dataset import Dataset
from .exceptions import DataError

SYNTHETIC_PREFIX = 'synthetic_'


class MinorityOversampler:
    """Adds interpolated minority samples to a training set.

    Each synthetic sample lies on the segment between a minority sample and one
    of its ``k_neighbors`` nearest minority neighbours. Original rows are kept
    unchanged and in order; synthetic rows are appended after them.
    """

    def __init__(self, k_neighbors: int = 5, target_count: Optional[int] = None,
                 random_state: int = 42):
        self.k_neighbors = k_neighbors
        self.target_count = target_count
        self.random_state = random_state

    def fit_resample(self, dataset: Dataset) -> Dataset:
        counts = dataset.class_counts()
        minority, majority = counts.idxmin(), counts.idxmax()
        n_minority = int(counts[minority])

        if n_minority < self.k_neighbors + 1:
            raise DataError(
                f"Minority class '{minority}' has {n_minority} samples; "
                f"at least {self.k_neighbors + 1} are needed for {self.k_neighbors} neighbours"
            )

        target = int(counts[majority]) if self.target_count is None else int(self.target_count)
        if target < n_minority:
            raise ValueError(f"Target count {target} is below the current minority count {n_minority}")
        if target == n_minority:
            logger.info(f"  Minority class '{minority}' already at {n_minority} samples")
            return dataset

        minority_code = 1 if minority == dataset.classes[1] else 0
        smote = SMOTE(
            sampling_strategy={minority_code: target},
            k_neighbors=self.k_neighbors,
            random_state=self.random_state,
        )
        X_resampled, _ = smote.fit_resample(dataset.features.to_numpy(dtype=float),
                                            dataset.indicator())

        synthetic_values = X_resampled[len(dataset):]
        synthetic_ids = [f"{SYNTHETIC_PREFIX}{i:06d}" for i in range(len(synthetic_values))]
        clashes = set(synthetic_ids) & set(map(str, dataset.sample_ids))
        if clashes:
            raise DataError(f"Sample ids clash with synthetic ids: {sorted(clashes)[:5]}")

        synthetic = Dataset(
            features=pd.DataFrame(synthetic_values, index=synthetic_ids,
                                  columns=dataset.features.columns),
            labels=pd.Series([minority] * len(synthetic_ids), index=synthetic_ids,
                             name=dataset.labels.name, dtype=dataset.labels.dtype),
            classes=dataset.classes,
        )

        logger.info(f"  SMOTE (k={self.k_neighbors}): '{minority}' {n_minority} -> {target}, "
                    f"{len(synthetic_ids)} synthetic samples added")
        return dataset.append(synthetic)

"""
Stratified train/test/validation partitioning.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from sklearn.model_selection import train_test_split
from loguru import logger

from .dataset import Dataset
from .exceptions import DataError


@dataclass(frozen=True)
class Partitions:
    """Disjoint training, test and validation subsets of one dataset."""

    train: Dataset
    test: Dataset
    validation: Dataset

    def items(self):
        return (('train', self.train), ('test', self.test), ('validation', self.validation))


class StratifiedSplitter:
    """Seeded stratified three-way split preserving class proportions."""

    def __init__(self, proportions: Sequence[float] = (0.6, 0.2, 0.2), random_state: int = 42):
        proportions = tuple(float(p) for p in proportions)
        if len(proportions) != 3:
            raise ValueError("Expected (train, test, validation) proportions")
        if any(p <= 0 for p in proportions):
            raise ValueError(f"Proportions must be positive: {proportions}")
        if not np.isclose(sum(proportions), 1.0):
            raise ValueError(f"Proportions must sum to 1.0: {proportions}")
        self.proportions = proportions
        self.random_state = random_state

    def split(self, dataset: Dataset) -> Partitions:
        """Partition ``dataset`` into train/test/validation."""
        train_p, test_p, validation_p = self.proportions
        ids = np.asarray(dataset.sample_ids)
        labels = dataset.labels.to_numpy()

        try:
            train_ids, rest_ids, _, rest_labels = train_test_split(
                ids, labels,
                train_size=train_p,
                random_state=self.random_state,
                stratify=labels,
            )
            test_ids, validation_ids = train_test_split(
                rest_ids,
                test_size=test_p / (test_p + validation_p),
                random_state=self.random_state,
                stratify=rest_labels,
            )
        except ValueError as e:
            raise DataError(f"Cannot stratify {len(dataset)} samples with class counts "
                            f"{dataset.class_counts().to_dict()}: {e}") from e

        partitions = Partitions(
            train=dataset.subset(self._in_original_order(dataset, train_ids)),
            test=dataset.subset(self._in_original_order(dataset, test_ids)),
            validation=dataset.subset(self._in_original_order(dataset, validation_ids)),
        )

        for name, part in partitions.items():
            counts = part.class_counts()
            empty = counts.index[counts == 0].tolist()
            if empty:
                raise DataError(f"Partition '{name}' has no samples of class {empty}")
            logger.info(f"  {name}: {len(part)} samples, class counts {counts.to_dict()}")

        return partitions

    @staticmethod
    def _in_original_order(dataset: Dataset, selected) -> list:
        selected = set(selected)
        return [sample_id for sample_id in dataset.sample_ids if sample_id in selected]

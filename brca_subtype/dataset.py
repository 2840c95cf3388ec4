"""
Labelled gene-expression dataset shared by every pipeline stage.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import DataError


def default_class_order(labels: pd.Series) -> Tuple[str, str]:
    """Order the two classes minority first, breaking count ties by name."""
    counts = labels.value_counts()
    if len(counts) != 2:
        raise DataError(f"Expected exactly two classes, found {sorted(map(str, counts.index))}")
    ordered = sorted(counts.items(), key=lambda item: (item[1], str(item[0])))
    return ordered[0][0], ordered[1][0]


@dataclass(frozen=True)
class Dataset:
    """Samples (rows keyed by sample id) with a fixed gene schema and two-class labels.

    ``classes`` fixes the label order used everywhere downstream: the first
    class is coded 0 and the second class 1.
    """

    features: pd.DataFrame
    labels: pd.Series
    classes: Tuple[str, str]

    def __post_init__(self):
        if len(self.classes) != 2 or self.classes[0] == self.classes[1]:
            raise DataError(f"Label domain must hold two distinct classes, got {self.classes}")
        if not self.features.index.equals(self.labels.index):
            raise DataError("Feature rows and labels are not keyed by the same sample ids")
        if self.features.index.has_duplicates:
            duplicated = self.features.index[self.features.index.duplicated()].unique().tolist()
            raise DataError(f"Duplicate sample ids: {duplicated[:10]}")
        if self.features.columns.has_duplicates:
            raise DataError("Duplicate gene columns in feature schema")

        non_numeric = [col for col in self.features.columns
                       if not pd.api.types.is_numeric_dtype(self.features[col])]
        if non_numeric:
            raise DataError(f"Non-numeric feature columns: {non_numeric[:10]}")

        values = self.features.to_numpy(dtype=float)
        if not np.isfinite(values).all():
            bad_columns = self.features.columns[~np.isfinite(values).all(axis=0)].tolist()
            raise DataError(f"Missing or non-finite values in columns: {bad_columns[:10]}")

        if self.labels.isnull().any():
            raise DataError("Missing labels for samples: "
                            f"{self.labels.index[self.labels.isnull()].tolist()[:10]}")
        unknown = set(self.labels.unique()) - set(self.classes)
        if unknown:
            raise DataError(f"Labels outside the class domain {self.classes}: {sorted(map(str, unknown))}")

    @classmethod
    def from_frame(cls, df: pd.DataFrame, label_column: str,
                   classes: Optional[Sequence[str]] = None) -> 'Dataset':
        """Build a dataset from a wide frame (one row per sample, one column per gene)."""
        if label_column not in df.columns:
            raise DataError(f"Label column '{label_column}' not found")
        labels = df[label_column]
        features = df.drop(columns=[label_column])
        if classes is None:
            classes = default_class_order(labels)
        return cls(features=features, labels=labels.rename(label_column), classes=tuple(classes))

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def sample_ids(self) -> pd.Index:
        return self.features.index

    @property
    def feature_names(self) -> list:
        return list(self.features.columns)

    def class_counts(self) -> pd.Series:
        """Count samples per class, in class order."""
        return self.labels.value_counts().reindex(list(self.classes), fill_value=0)

    def indicator(self) -> np.ndarray:
        """Encode labels as 0 (first class) / 1 (second class)."""
        return (self.labels.to_numpy() == self.classes[1]).astype(int)

    def decode(self, indicator: Iterable[int]) -> np.ndarray:
        """Map 0/1 indicators back to class names."""
        indicator = np.asarray(indicator).astype(int)
        return np.where(indicator == 1, self.classes[1], self.classes[0]).astype(object)

    def subset(self, sample_ids) -> 'Dataset':
        """Return a new dataset restricted to the given sample ids."""
        return Dataset(
            features=self.features.loc[sample_ids].copy(),
            labels=self.labels.loc[sample_ids].copy(),
            classes=self.classes,
        )

    def with_features(self, features: pd.DataFrame) -> 'Dataset':
        """Return a new dataset with the same labels and replaced feature values."""
        return Dataset(features=features, labels=self.labels.copy(), classes=self.classes)

    def append(self, other: 'Dataset') -> 'Dataset':
        """Return a new dataset with ``other``'s samples added after this one's."""
        if other.classes != self.classes:
            raise DataError(f"Cannot combine class domains {self.classes} and {other.classes}")
        if list(other.features.columns) != list(self.features.columns):
            raise DataError("Cannot combine datasets with different gene schemas")
        return Dataset(
            features=pd.concat([self.features, other.features]),
            labels=pd.concat([self.labels, other.labels]),
            classes=self.classes,
        )

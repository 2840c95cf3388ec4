"""
Data preprocessing module for the breast-tumor subtype study.
"""

import os

import pandas as pd
import numpy as np
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.utils.validation import check_is_fitted
from loguru import logger
from typing import Dict, Any

from .config import config
from .dataset import Dataset, default_class_order
from .data_splitting import StratifiedSplitter
from .exceptions import DataError


def _non_finite_columns(frame: pd.DataFrame) -> list:
    values = frame.to_numpy(dtype=float)
    return frame.columns[~np.isfinite(values).all(axis=0)].tolist()


class OutlierScaler(BaseEstimator, TransformerMixin):
    """Z-score each gene, then replace |z| above the threshold with the gene's median z.

    Means, standard deviations and post-scaling medians are learned once in
    ``fit`` and reused unchanged by every later ``transform``.
    """

    def __init__(self, threshold: float = 3.0):
        self.threshold = threshold

    def fit(self, X: pd.DataFrame, y=None):
        frame = pd.DataFrame(X)
        bad = _non_finite_columns(frame)
        if bad:
            raise DataError(f"Non-finite values in columns: {bad[:10]}")

        means = frame.mean()
        stds = frame.std(ddof=1)
        degenerate = stds.index[~(stds > 0)].tolist()
        if degenerate:
            raise DataError(f"Zero-variance columns cannot be scaled: {degenerate[:10]}")

        self.feature_names_ = list(frame.columns)
        self.mean_ = means
        self.scale_ = stds
        self.median_ = ((frame - means) / stds).median()
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        check_is_fitted(self, 'mean_')
        frame = pd.DataFrame(X)
        missing = [col for col in self.feature_names_ if col not in frame.columns]
        if missing:
            raise DataError(f"Columns seen during fit are missing: {missing[:10]}")
        frame = frame[self.feature_names_]
        bad = _non_finite_columns(frame)
        if bad:
            raise DataError(f"Non-finite values in columns: {bad[:10]}")

        z = ((frame - self.mean_) / self.scale_).to_numpy(dtype=float)
        medians = np.broadcast_to(self.median_.to_numpy(dtype=float), z.shape)
        capped = np.where(np.abs(z) > self.threshold, medians, z)
        return pd.DataFrame(capped, index=frame.index, columns=self.feature_names_)


class DataPreprocessor:
    """Handles loading, quality checks, scaling and splitting."""

    def __init__(self, config=config):
        self.config = config
        self.scaler = None
        self.feature_columns = None

    def load_data(self) -> pd.DataFrame:
        """Load the expression table from disk."""
        logger.info(f"Loading data from {self.config.data_path}")

        try:
            df = pd.read_csv(self.config.data_path)
        except FileNotFoundError:
            raise FileNotFoundError(
                f"Data file not found at {self.config.data_path}. "
                f"Export the expression table there first."
            )

        df.columns = df.columns.str.strip()
        logger.info(f"Table loaded: {df.shape[0]} rows, {df.shape[1]} columns")
        return df

    def reshape_long_format(self, df: pd.DataFrame) -> pd.DataFrame:
        """Pivot (sample, gene, value, label) rows into one row per sample."""
        sample_col = self.config.sample_column
        gene_col = self.config.gene_column
        value_col = self.config.value_column
        label_col = self.config.label_column

        required = [sample_col, gene_col, value_col, label_col]
        absent = [col for col in required if col not in df.columns]
        if absent:
            raise DataError(f"Long-format table is missing columns: {absent}")

        duplicated = df.duplicated(subset=[sample_col, gene_col])
        if duplicated.any():
            pairs = df.loc[duplicated, [sample_col, gene_col]].head(5).values.tolist()
            raise DataError(f"Duplicate (sample, gene) measurements: {pairs}")

        label_counts = df.groupby(sample_col)[label_col].nunique()
        conflicting = label_counts.index[label_counts > 1].tolist()
        if conflicting:
            raise DataError(f"Samples with conflicting labels: {conflicting[:10]}")

        wide = df.pivot(index=sample_col, columns=gene_col, values=value_col)
        wide.columns.name = None
        labels = df.groupby(sample_col)[label_col].first()
        wide[label_col] = labels.reindex(wide.index)
        return wide

    def check_data_quality(self, df: pd.DataFrame) -> Dict[str, Any]:
        """Check data quality and report issues."""
        label_col = self.config.label_column
        gene_columns = [col for col in df.columns if col != label_col]

        quality_report = {
            'total_samples': int(df.shape[0]),
            'total_genes': len(gene_columns),
            'missing_values': int(df[gene_columns].isnull().sum().sum()),
            'duplicate_samples': int(df.index.duplicated().sum()),
            'label_present': label_col in df.columns,
        }

        if quality_report['label_present']:
            counts = df[label_col].value_counts()
            quality_report['class_distribution'] = {str(k): int(v) for k, v in counts.items()}
            if len(counts) == 2:
                quality_report['imbalance_ratio'] = float(counts.max() / counts.min())

        logger.info("Data quality report:")
        for key, value in quality_report.items():
            logger.info(f"  {key.replace('_', ' ').title()}: {value}")

        return quality_report

    def prepare_dataset(self, df: pd.DataFrame) -> Dataset:
        """Turn a wide table into a validated Dataset."""
        label_col = self.config.label_column
        if self.config.sample_column in df.columns:
            df = df.set_index(self.config.sample_column)

        gene_columns = [col for col in df.columns if col != label_col]
        incomplete = df.index[df[gene_columns].isnull().any(axis=1)].tolist()
        if incomplete:
            raise DataError(f"{len(incomplete)} samples have missing expression values, "
                            f"e.g. {incomplete[:5]}")

        classes = self.config.class_order
        if classes is None and label_col in df.columns:
            classes = default_class_order(df[label_col])

        dataset = Dataset.from_frame(df, label_col, classes=classes)
        self.feature_columns = dataset.feature_names
        logger.info(f"Dataset: {len(dataset)} samples x {len(self.feature_columns)} genes, "
                    f"classes {dataset.classes}, counts {dataset.class_counts().to_dict()}")
        return dataset

    def fit_scaling(self, dataset: Dataset) -> Dataset:
        """Fit the outlier-capping scaler on the full dataset and apply it."""
        logger.info(f"Scaling {len(dataset.feature_names)} genes and capping |z| > "
                    f"{self.config.outlier_threshold} at the column median")
        self.scaler = OutlierScaler(threshold=self.config.outlier_threshold)
        scaled = self.scaler.fit_transform(dataset.features)
        return dataset.with_features(scaled)

    def transform(self, features: pd.DataFrame) -> pd.DataFrame:
        """Apply the stored scaling parameters to new samples."""
        if self.scaler is None:
            raise DataError("Scaling parameters have not been fitted")
        return self.scaler.transform(features)

    def save_processed_data(self, partitions: Dict[str, Dataset], processed_dir: str):
        """Save scaled partitions as wide CSV files."""
        os.makedirs(processed_dir, exist_ok=True)
        for name, dataset in partitions.items():
            frame = dataset.features.copy()
            frame[self.config.label_column] = dataset.labels
            frame.index.name = self.config.sample_column
            frame.to_csv(os.path.join(processed_dir, f"{name}.csv"))
        logger.info(f"Processed partitions saved to {processed_dir}/")

    def load_processed_data(self, path: str, classes=None) -> Dataset:
        """Load a partition written by ``save_processed_data``."""
        frame = pd.read_csv(path, index_col=self.config.sample_column)
        if classes is None:
            classes = self.config.class_order
        return Dataset.from_frame(frame, self.config.label_column, classes=classes)

    def run_preprocessing_pipeline(self, df: pd.DataFrame = None) -> Dict[str, Any]:
        """Run complete preprocessing pipeline."""
        logger.info("=" * 60)
        logger.info("DATA PREPROCESSING PIPELINE")
        logger.info("=" * 60)

        if df is None:
            df = self.load_data()

        if self.config.gene_column in df.columns and self.config.value_column in df.columns:
            df = self.reshape_long_format(df)
        elif self.config.sample_column in df.columns:
            df = df.set_index(self.config.sample_column)

        quality_report = self.check_data_quality(df)
        dataset = self.prepare_dataset(df)

        # Scaling statistics come from the full dataset, before partitioning.
        scaled = self.fit_scaling(dataset)

        splitter = StratifiedSplitter(self.config.split_proportions,
                                      random_state=self.config.random_state)
        partitions = splitter.split(scaled)

        return {
            'dataset': scaled,
            'train': partitions.train,
            'test': partitions.test,
            'validation': partitions.validation,
            'scaler': self.scaler,
            'feature_columns': self.feature_columns,
            'quality_report': quality_report,
        }

"""
Shared fixtures: seeded synthetic gene-expression datasets.
"""

import numpy as np
import pandas as pd
import pytest

from brca_subtype.dataset import Dataset

LOBULAR = 'Lobular'
DUCTAL = 'Ductal'
CLASSES = (LOBULAR, DUCTAL)


def make_dataset(n_majority=90, n_minority=30, n_genes=6, shift=1.0, seed=0, prefix='TCGA'):
    """Ductal majority vs. lobular minority; the first half of the genes carry signal."""
    rng = np.random.default_rng(seed)
    n = n_majority + n_minority
    values = rng.normal(size=(n, n_genes))
    values[n_majority:, : max(1, n_genes // 2)] += shift

    ids = [f"{prefix}-{i:04d}" for i in range(n)]
    genes = [f"GENE{j}" for j in range(n_genes)]
    labels = [DUCTAL] * n_majority + [LOBULAR] * n_minority

    features = pd.DataFrame(values, index=ids, columns=genes)
    return Dataset(features=features, labels=pd.Series(labels, index=ids, name='cancer_type'),
                   classes=CLASSES)


def to_long_format(dataset):
    """Melt a dataset into (sample, gene, value, label) rows."""
    frame = dataset.features.copy()
    frame.index.name = 'sample_id'
    long = frame.reset_index().melt(id_vars='sample_id', var_name='gene', value_name='value')
    long['cancer_type'] = long['sample_id'].map(dataset.labels)
    return long


@pytest.fixture
def dataset_factory():
    return make_dataset


@pytest.fixture
def small_dataset():
    return make_dataset(n_majority=90, n_minority=30, n_genes=6, shift=1.5, seed=1)

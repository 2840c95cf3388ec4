"""
Tests for stratified train/test/validation splitting.
"""

import pytest

from brca_subtype.data_splitting import StratifiedSplitter
from brca_subtype.exceptions import DataError

from conftest import LOBULAR, make_dataset


class TestStratifiedSplitter:
    """Test partition integrity and stratification."""

    @pytest.fixture
    def dataset(self):
        return make_dataset(n_majority=900, n_minority=100, n_genes=4, seed=11)

    def test_partitions_reconstruct_dataset(self, dataset):
        partitions = StratifiedSplitter(random_state=42).split(dataset)

        ids = [sample_id for _, part in partitions.items() for sample_id in part.sample_ids]
        assert len(ids) == len(set(ids))
        assert set(ids) == set(dataset.sample_ids)

    def test_partition_sizes(self, dataset):
        partitions = StratifiedSplitter((0.6, 0.2, 0.2), random_state=42).split(dataset)

        assert len(partitions.train) == 600
        assert len(partitions.test) == 200
        assert len(partitions.validation) == 200

    def test_class_proportions_preserved(self, dataset):
        partitions = StratifiedSplitter(random_state=42).split(dataset)
        overall = (dataset.labels == LOBULAR).mean()

        for name, part in partitions.items():
            proportion = (part.labels == LOBULAR).mean()
            assert abs(proportion - overall) <= 0.02, name

    def test_same_seed_same_split(self, dataset):
        first = StratifiedSplitter(random_state=7).split(dataset)
        second = StratifiedSplitter(random_state=7).split(dataset)

        for (_, a), (_, b) in zip(first.items(), second.items()):
            assert list(a.sample_ids) == list(b.sample_ids)

    def test_different_seed_different_split(self, dataset):
        first = StratifiedSplitter(random_state=1).split(dataset)
        second = StratifiedSplitter(random_state=2).split(dataset)

        assert set(first.test.sample_ids) != set(second.test.sample_ids)

    def test_rows_are_unchanged(self, dataset):
        partitions = StratifiedSplitter(random_state=3).split(dataset)
        part = partitions.validation

        assert (part.features == dataset.features.loc[part.sample_ids]).all().all()
        assert (part.labels == dataset.labels.loc[part.sample_ids]).all()

    def test_too_few_minority_samples(self):
        tiny = make_dataset(n_majority=40, n_minority=2, seed=5)

        with pytest.raises(DataError):
            StratifiedSplitter(random_state=42).split(tiny)

    @pytest.mark.parametrize('proportions', [(0.5, 0.2, 0.2), (0.6, 0.4), (0.8, 0.3, -0.1)])
    def test_invalid_proportions(self, proportions):
        with pytest.raises(ValueError):
            StratifiedSplitter(proportions)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

"""
Tests for configuration handling.
"""

import pytest

from brca_subtype.config import AVAILABLE_MODELS, Config


class TestConfig:
    """Test defaults, validation and YAML persistence."""

    def test_defaults_are_valid(self):
        config = Config()
        config.validate()

        assert config.split_proportions == (0.6, 0.2, 0.2)
        assert config.selected_models == list(AVAILABLE_MODELS)
        assert list(config.knn_k_values) == list(range(1, 16))

    def test_yaml_round_trip(self, tmp_path):
        config = Config()
        config.random_state = 7
        config.class_order = ('Lobular', 'Ductal')
        config.selected_models = ['kNN', 'ANN']
        config.svm_costs = [0.5, 5.0]

        path = tmp_path / 'nested' / 'config.yaml'
        config.to_yaml(str(path))
        loaded = Config.from_yaml(str(path))

        assert loaded == config

    def test_partial_yaml_keeps_defaults(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("cv_folds: 5\nsplit_proportions: [0.7, 0.15, 0.15]\n")

        loaded = Config.from_yaml(str(path))
        assert loaded.cv_folds == 5
        assert loaded.split_proportions == (0.7, 0.15, 0.15)
        assert loaded.random_state == 42

    @pytest.mark.parametrize('field, value', [
        ('split_proportions', (0.5, 0.3, 0.3)),
        ('split_proportions', (0.6, 0.4)),
        ('selected_models', ['kNN', 'Random Forest']),
        ('knn_k_values', []),
        ('class_order', ('Ductal', 'Ductal')),
        ('cv_folds', 1),
        ('outlier_threshold', 0.0),
    ])
    def test_invalid_settings(self, field, value):
        config = Config()
        setattr(config, field, value)

        with pytest.raises(ValueError):
            config.validate()

    def test_create_directories(self, tmp_path):
        config = Config()
        config.results_dir = str(tmp_path / 'results')
        config.models_dir = str(tmp_path / 'models')
        config.logs_dir = str(tmp_path / 'logs')
        config.create_directories()

        for name in ('results', 'models', 'logs'):
            assert (tmp_path / name).is_dir()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

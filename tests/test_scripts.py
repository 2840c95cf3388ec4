"""
Tests for the command-line entry points.
"""

import os
import runpy

import pandas as pd
import pytest

from brca_subtype.config import Config

from conftest import make_dataset, to_long_format

SCRIPTS_DIR = os.path.join(os.path.dirname(__file__), '..', 'scripts')


@pytest.fixture(scope='module')
def run_pipeline():
    return runpy.run_path(os.path.join(SCRIPTS_DIR, 'run_pipeline.py'))


@pytest.fixture(scope='module')
def evaluate_model():
    return runpy.run_path(os.path.join(SCRIPTS_DIR, 'evaluate_model.py'))


@pytest.fixture
def config_path(tmp_path):
    dataset = make_dataset(n_majority=120, n_minority=40, n_genes=4, shift=1.5, seed=23)
    to_long_format(dataset).to_csv(tmp_path / 'expression.csv', index=False)

    config = Config()
    config.data_path = str(tmp_path / 'expression.csv')
    config.results_dir = str(tmp_path / 'results')
    config.models_dir = str(tmp_path / 'models')
    config.logs_dir = str(tmp_path / 'logs')
    config.knn_k_values = [1, 3, 5]
    config.svm_costs = [0.1, 1]
    config.cv_folds = 3
    path = tmp_path / 'config.yaml'
    config.to_yaml(str(path))
    return path


class TestRunPipeline:
    """Test argument handling and the end-to-end run."""

    def test_build_config_applies_overrides(self, run_pipeline, config_path):
        args = run_pipeline['parse_args']([
            '--config', str(config_path), '--models', 'kNN', 'ANN',
            '--output-dir', 'elsewhere', '--seed', '7', '--n-jobs', '2',
        ])
        config = run_pipeline['build_config'](args)

        assert config.selected_models == ['kNN', 'ANN']
        assert config.results_dir == 'elsewhere'
        assert config.random_state == 7
        assert config.n_jobs == 2
        assert config.cv_folds == 3

    def test_build_config_rejects_unknown_model(self, run_pipeline):
        args = run_pipeline['parse_args'](['--models', 'Random Forest'])

        with pytest.raises(ValueError):
            run_pipeline['build_config'](args)

    def test_main_then_evaluate_checkpoints(self, run_pipeline, evaluate_model, config_path, tmp_path):
        exit_code = run_pipeline['main']([
            '--config', str(config_path), '--models', 'kNN', 'SVM Linear', '--save-models',
        ])

        assert exit_code == 0
        results_dir = tmp_path / 'results'
        for filename in ('config.yaml', 'all_model_results.json', 'ensemble_results.json',
                         'processed/validation.csv'):
            assert (results_dir / filename).exists()
        assert (tmp_path / 'models' / 'SVM_Linear.pkl').exists()
        assert (tmp_path / 'logs' / 'pipeline.log').exists()

        results = evaluate_model['evaluate_models']([
            '--model-dir', str(tmp_path / 'models'),
            '--partition', str(results_dir / 'processed' / 'validation.csv'),
            '--output-dir', str(tmp_path / 'evaluation'),
        ])

        assert set(results) == {'kNN', 'SVM Linear', 'Diagnostic'}
        summary = pd.read_csv(tmp_path / 'evaluation' / 'evaluation_summary.csv')
        assert set(summary['model']) == {'kNN', 'SVM Linear', 'Diagnostic'}

    def test_main_reports_failure(self, run_pipeline, config_path, tmp_path):
        os.remove(tmp_path / 'expression.csv')

        assert run_pipeline['main'](['--config', str(config_path)]) == 1


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

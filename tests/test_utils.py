"""Tests for lipms.utils module."""

import os

import pytest
import yaml

from lipms.utils import ParserStageError, _create_output_dirs, _load_config


class TestLoadConfig:
    def test_loads_valid_yaml(self, tmp_path):
        config = {'experiment': {'name': 'test'}, 'statistics': {'fc_min': 1.5}}
        path = str(tmp_path / 'config.yaml')
        with open(path, 'w') as f:
            yaml.dump(config, f)

        result = _load_config(path)
        assert result['experiment']['name'] == 'test'
        assert result['statistics']['fc_min'] == 1.5
        assert result['statistics']['fdr_max'] == 0.01
        assert result['statistics']['correction'] == 'fdr_bh'
        assert result['species']['ecn_k'] == 0.5

    def test_filters_replace_defaults(self, tmp_path):
        path = str(tmp_path / 'config.yaml')
        with open(path, 'w') as f:
            yaml.dump({'cohort': {'filters': {'Incident': 0}}}, f)

        result = _load_config(path)
        assert result['cohort']['filters'] == {'Incident': 0}

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('')

        result = _load_config(str(path))
        assert result['cleaning']['n_instrument_rows'] == 6

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            _load_config('/nonexistent/config.yaml')


class TestCreateOutputDirs:
    def test_creates_all_directories(self, tmp_path):
        base = str(tmp_path / 'output')
        dirs = _create_output_dirs(base)

        for key in ('base', 'figures', 'qc', 'viz', 'tables', 'export'):
            assert os.path.isdir(dirs[key])

    def test_idempotent(self, tmp_path):
        base = str(tmp_path / 'output')
        dirs1 = _create_output_dirs(base)
        dirs2 = _create_output_dirs(base)
        assert dirs1 == dirs2


class TestParserStageError:
    def test_names_stage(self):
        err = ParserStageError('boom')
        assert err.stage == 'name normalization'
        assert str(err) == '[name normalization] boom'
        assert isinstance(err, RuntimeError)

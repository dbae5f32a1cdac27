"""End-to-end tests for lipms.pipeline."""

import os

import pandas as pd
import pytest

from lipms import ParserStageError, run_pipeline

from conftest import FakeParser


class BrokenParser(FakeParser):
    def parse(self, names, grammar):
        raise ConnectionError("parser unreachable")


class TestRunPipeline:
    def test_full_run(self, sample_config, fake_parser):
        config_path, tmp_path = sample_config
        data = run_pipeline(config_path, parser=fake_parser)

        assert data['unparsed_names'] == ['Unknown lipid 1']
        assert len(fake_parser.calls) == 1
        assert os.path.exists(data['export_path'])

        for key in ('cv', 'annotated', 'cohort', 'stats_results', 'species', 'figures'):
            assert key in data

        exported = pd.read_csv(data['export_path'])
        assert len(exported) == 7

    def test_without_plots(self, sample_config, fake_parser):
        config_path, _ = sample_config
        data = run_pipeline(config_path, parser=fake_parser, make_plots=False)
        assert 'figures' not in data

    def test_parser_failure_stops_run(self, sample_config):
        config_path, _ = sample_config
        with pytest.raises(ParserStageError):
            run_pipeline(config_path, parser=BrokenParser())

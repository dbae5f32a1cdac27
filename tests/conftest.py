"""Shared test fixtures for lipidomics pipeline tests."""

import matplotlib

matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest
import yaml

from lipms.annotation import ANNOTATION_COLUMNS, LipidNameParser


FEATURES = [
    'Cer d18:1/C16:0',
    'Cer d18:1/C18:0',
    'Cer d18:1/C24:0 M-H2O',
    'SM d18:1/C16:0',
    'MHCer d18:1/C16:0',
    'Unknown lipid 1',
]

# Rewritten name -> annotation returned by the fake parser
KNOWN_LIPIDS = {
    'Cer d18:1/16:0': ('Cer 18:1;O2/16:0', 'Cer', 'SP', 34, 1),
    'Cer d18:1/18:0': ('Cer 18:1;O2/18:0', 'Cer', 'SP', 36, 1),
    'Cer d18:1/24:0': ('Cer 18:1;O2/24:0', 'Cer', 'SP', 42, 1),
    'SM d18:1/16:0': ('SM 18:1;O2/16:0', 'SM', 'SP', 34, 1),
    'HexCer d18:1/16:0': ('HexCer 18:1;O2/16:0', 'HexCer', 'SP', 34, 1),
}

INSTRUMENT_ROWS = {
    'RT': [5.0, 5.6, 7.4, 4.2, 6.1, 3.3],
    'Q1': [520.5, 548.5, 632.6, 703.6, 682.6, 400.0],
    'Q3': [264.3, 264.3, 264.3, 184.1, 264.3, 200.0],
    'QC_flag': [1, 1, 1, 1, 1, 0],
    'Dwell': [10, 10, 10, 10, 10, 10],
    'CE': [30, 30, 30, 35, 30, 20],
}

# SampleID -> concentrations in FEATURES order
SAMPLE_ROWS = {
    'S01': [101, 52, 80, 100, 31, 10],
    'S02': [102, 54, 82, 200, 32, 10],
    'S03': [103, 56, 79, 104, np.nan, 10],
    'S04': [104, 58, 81, 205, 34, 10],
    'S05': [105, 60, 80, 98, 35, 10],
    'S06': [106, 62, 83, 198, 36, 10],
    'S07': [107, 64, 78, 102, 37, 10],
    'S08': [108, 66, 84, 210, 38, 10],
}

BQC_ROWS = [
    [100, 50, 80, 150, 30, 10],
    [100, 55, 82, 152, 33, 11],
    [100, 60, 81, 149, 36, 12],
]


class FakeParser(LipidNameParser):
    """In-memory parser that knows a fixed set of names."""

    def __init__(self, known=None):
        self.known = KNOWN_LIPIDS if known is None else known
        self.calls = []

    def parse(self, names, grammar):
        self.calls.append((list(names), grammar))
        rows = []
        for name in names:
            if name in self.known:
                normalized, lipid_class, category, total_c, total_db = self.known[name]
                rows.append({
                    'original_name': name,
                    'normalized_name': normalized,
                    'lipid_class': lipid_class,
                    'lipid_category': category,
                    'total_c': total_c,
                    'total_db': total_db,
                })
        return pd.DataFrame(rows, columns=ANNOTATION_COLUMNS)


def _raw_table():
    columns = ['filename', 'type', 'batch'] + [f'{f} Area' for f in FEATURES]
    rows = []
    for label, values in INSTRUMENT_ROWS.items():
        rows.append([label, np.nan, np.nan] + values)
    for i, (sample_id, values) in enumerate(SAMPLE_ROWS.items(), start=1):
        rows.append([f'{sample_id}#{i}.mzML', 'SAMPLE', 1] + values)
    for i, values in enumerate(BQC_ROWS, start=1):
        rows.append([f'BQC_{i:02d}.mzML', 'BQC', 1] + values)
    return pd.DataFrame(rows, columns=columns)


def _sample_metadata():
    return pd.DataFrame({
        'SampleID': list(SAMPLE_ROWS) + ['S09'],
        'Gender': [1, 2, 1, 2, 1, 2, 1, 2, 1],
        'Incident': [0, 0, 0, 0, 0, 0, 0, 1, 0],
        'Age': [50, 61, 47, 55, 66, 58, 49, 70, 52],
    })


@pytest.fixture
def raw_table():
    return _raw_table()


@pytest.fixture
def fake_parser():
    return FakeParser()


@pytest.fixture
def sample_config(tmp_path):
    """Write a peak-area CSV, a metadata CSV and a YAML config for testing."""
    input_path = str(tmp_path / 'peak_areas.csv')
    meta_path = str(tmp_path / 'sample_metadata.csv')
    _raw_table().to_csv(input_path, index=False)
    _sample_metadata().to_csv(meta_path, index=False)

    config = {
        'experiment': {
            'name': 'Test_Lipidomics',
            'description': 'Unit test experiment',
        },
        'data_paths': {
            'input_file': input_path,
            'sample_metadata': meta_path,
            'output_dir': str(tmp_path / 'results'),
        },
        'annotation': {
            'timeout': 10,
        },
        'cohort': {
            'filters': {'SampleType': 'SAMPLE', 'Incident': 0},
        },
        'statistics': {
            'group_column': 'Gender',
            'group_labels': {1: 'M', 2: 'F'},
        },
    }

    config_path = str(tmp_path / 'test_config.yaml')
    with open(config_path, 'w') as f:
        yaml.dump(config, f)

    return config_path, tmp_path


@pytest.fixture
def prepped_data(sample_config):
    """Run prep_lip and return the result for downstream tests."""
    from lipms import prep_lip

    config_path, tmp_path = sample_config
    return prep_lip(config_path)


@pytest.fixture
def annotated_data(prepped_data, fake_parser):
    from lipms import annot_lip

    return annot_lip(prepped_data, parser=fake_parser)


@pytest.fixture
def cohort_data(annotated_data):
    from lipms import cohort_lip

    return cohort_lip(annotated_data)

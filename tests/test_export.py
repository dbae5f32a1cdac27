"""Tests for lipms.export module."""

import os

import numpy as np
import pandas as pd

from lipms import export_lip
from lipms.export import to_analyst_table


class TestToAnalystTable:
    def test_layout(self, cohort_data):
        table = to_analyst_table(cohort_data['cohort'], 'Gender', group_labels={1: 'M', 2: 'F'})

        assert table.columns[:2].tolist() == ['Sample', 'Label']
        assert len(table) == 7
        assert set(table['Label']) == {'M', 'F'}
        assert 'SM 18:1;O2/16:0' in table.columns
        assert 'Unknown lipid 1' in table.columns

    def test_values_relocated(self, cohort_data):
        table = to_analyst_table(cohort_data['cohort'], 'Gender').set_index('Sample')

        assert table.loc['S02', 'SM 18:1;O2/16:0'] == 200
        assert np.isnan(table.loc['S03', 'HexCer 18:1;O2/16:0'])
        assert table.loc['S01', 'Label'] == 1

    def test_replicate_injections_averaged(self):
        cohort = pd.DataFrame({
            'SampleID': ['A', 'A', 'B'],
            'Gender': [1, 1, 2],
            'species_name': ['x', 'x', 'x'],
            'lipid_name': ['X 1:0', 'X 1:0', 'X 1:0'],
            'conc': [1.0, 3.0, 5.0],
        })
        table = to_analyst_table(cohort, 'Gender').set_index('Sample')
        assert table.loc['A', 'X 1:0'] == 2.0


class TestExportLip:
    def test_writes_file(self, cohort_data):
        path = export_lip(cohort_data)

        assert os.path.exists(path)
        exported = pd.read_csv(path)
        assert len(exported) == 7

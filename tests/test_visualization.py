"""Tests for lipms.visualization module."""

import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from lipms import stat_lip, viz_lip
from lipms.qc import compute_cv
from lipms.visualization import (
    _display_order,
    plot_cv_histogram,
    plot_run_order,
    plot_volcano,
    volcano_data,
)


def _stats():
    return pd.DataFrame({
        'lipid_name': ['A', 'B', np.nan],
        'species_name': ['a', 'b', 'c'],
        'log2FC': [1.0, -0.1, np.nan],
        'p_value': [0.0, 0.5, np.nan],
        'FDR': [0.0, 0.5, np.nan],
        'significance_label': ['higher in F', 'not significant', 'not significant'],
    })


class TestVolcanoData:
    def test_coordinates(self):
        plot_df = volcano_data(_stats(), fc_min=2.0, fdr_max=0.01)

        assert plot_df['neg_log10_FDR'].iloc[0] == pytest.approx(300)
        assert plot_df['neg_log10_FDR'].iloc[1] == -np.log10(0.5)
        assert plot_df.attrs['x_cut'] == 1.0
        assert plot_df.attrs['y_cut'] == pytest.approx(2.0)

    def test_volcano_figure(self):
        fig = plot_volcano(_stats(), label_top=5)
        assert len(fig.axes) == 1
        plt.close(fig)


class TestDisplayOrder:
    def test_listed_first(self):
        assert _display_order(['SAMPLE', 'BQC', 'TQC'], ['TQC', 'SAMPLE']) == ['TQC', 'SAMPLE', 'BQC']

    def test_default_sorted(self):
        assert _display_order(['SAMPLE', 'BQC']) == ['BQC', 'SAMPLE']


class TestQcFigures:
    def test_cv_histogram(self, prepped_data):
        fig = plot_cv_histogram(compute_cv(prepped_data['long']), display_order=['SAMPLE', 'BQC'])
        plt.close(fig)

    def test_run_order(self, prepped_data):
        fig = plot_run_order(prepped_data['long'])
        plt.close(fig)


class TestVizLip:
    def test_saves_plots(self, cohort_data):
        result = viz_lip(stat_lip(cohort_data))

        assert len(result['figures']) >= 2
        for path in result['figures']:
            assert os.path.exists(path)

"""
Export functions for the lipidomics pipeline.

Writes the cohort as a wide sample x lipid table with a group label
column, the layout expected by web-based metabolomics analysis tools.
"""

import os

import pandas as pd

from .utils import _banner


def to_analyst_table(cohort, group_col, group_labels=None, value_col='conc'):
    """
    One row per sample, a ``Label`` column, then one column per lipid.

    Lipids are keyed by their normalized name, falling back to the
    rewritten species name when the parser gave none. Several injections
    or species sharing a name are averaged.
    """
    group_labels = group_labels or {}

    df = cohort.copy()
    df['Lipid'] = df['lipid_name'].fillna(df['species_name'])

    values = df.groupby(['SampleID', 'Lipid'], sort=True)[value_col].mean().unstack('Lipid')
    values.columns.name = None

    labels = df.groupby('SampleID', sort=True)[group_col].first()
    labels = labels.map(lambda code: group_labels.get(code, code))

    table = pd.concat([labels.rename('Label'), values], axis=1)
    table.index.name = 'Sample'
    return table.reset_index()


def export_lip(data, filename='analyst_input.csv'):
    """
    Write the cohort table for the downstream analysis tool.

    Parameters
    ----------
    data : dict
        Output from cohort_lip() or stat_lip().
    filename : str, optional
        Output file name inside results/export/.

    Returns
    -------
    str
        Path of the written CSV.
    """

    _banner("EXPORT")

    stats_config = data['config']['statistics']
    table = to_analyst_table(
        data['cohort'],
        stats_config['group_column'],
        group_labels=stats_config['group_labels'],
    )

    path = os.path.join(data['output_dirs']['export'], filename)
    table.to_csv(path, index=False)

    print(f"\n  > Saved: {filename}")
    print(f"    {len(table)} samples x {table.shape[1] - 2} lipids")
    print(f"    Location: {data['output_dirs']['export']}")
    print("="*80 + "\n")

    return path

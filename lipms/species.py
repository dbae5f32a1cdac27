"""
Species annotation functions for the lipidomics pipeline.

Builds a one-row-per-feature table from the retained instrument rows
(retention time, precursor and product m/z) and the parser composition
data, and fits the equivalent carbon number (ECN) retention model.
"""

import copy
import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy.stats import linregress

from .prep import feature_columns
from .utils import _banner
from .visualization import plot_ecn_rt

ECN_K = 0.5


def _instrument_values(instrument, label_column, label, features):
    labels = instrument[label_column].astype(str).str.strip()
    match = instrument[labels == label]
    if match.empty:
        raise ValueError(f"Instrument row '{label}' not found in column '{label_column}'")
    return pd.to_numeric(match.iloc[0][features], errors='coerce').values


def build_species_table(instrument, annotated, annotations, rt_label='RT',
                        precursor_label='Q1', product_label='Q3',
                        label_column='filename', ecn_k=ECN_K):
    """
    One row per original feature with instrument and composition data.

    Parameters
    ----------
    instrument : pd.DataFrame
        Instrument rows returned by clean_wide_table().
    annotated : pd.DataFrame
        Output of normalize_names(); provides the feature -> name mapping.
    annotations : pd.DataFrame
        Parser annotations (``original_name``, ``total_c``, ``total_db`` ...).
    ecn_k : float, optional
        Double bond weight in ECN = total_c - k * total_db (default: 0.5).

    Returns
    -------
    pd.DataFrame
        Columns ``species_name_original``, ``RT``, ``precursor_mz``,
        ``product_mz``, ``species_name``, ``lipid_name``, ``lipid_class``,
        ``lipid_category``, ``total_c``, ``total_db``, ``ECN``.
    """
    features = feature_columns(instrument)

    species = pd.DataFrame({
        'species_name_original': features,
        'RT': _instrument_values(instrument, label_column, rt_label, features),
        'precursor_mz': _instrument_values(instrument, label_column, precursor_label, features),
        'product_mz': _instrument_values(instrument, label_column, product_label, features),
    })

    names = annotated[['species_name_original', 'species_name', 'lipid_name']]
    names = names.drop_duplicates('species_name_original')
    species = species.merge(names, on='species_name_original', how='left')

    composition = annotations[['original_name', 'lipid_class', 'lipid_category', 'total_c', 'total_db']]
    composition = composition.rename(columns={'original_name': 'species_name'})
    species = species.merge(composition, on='species_name', how='left')

    for col in ('total_c', 'total_db'):
        species[col] = pd.to_numeric(species[col], errors='coerce')
    species['ECN'] = species['total_c'] - ecn_k * species['total_db']
    return species


def fit_ecn_model(species, group_col='lipid_class', min_points=3):
    """
    Linear fit of retention time on ECN within each lipid class.

    Classes with fewer than ``min_points`` usable features, or a single
    ECN value, get NaN fit parameters.
    """
    rows = []
    usable = species.dropna(subset=['ECN', 'RT', group_col])
    for lipid_class, group in usable.groupby(group_col, sort=True):
        row = {group_col: lipid_class, 'n': len(group),
               'slope': np.nan, 'intercept': np.nan, 'r_squared': np.nan}
        if len(group) >= min_points and np.ptp(group['ECN'].values) > 0:
            fit = linregress(group['ECN'].values, group['RT'].values)
            row.update({'slope': fit.slope, 'intercept': fit.intercept,
                        'r_squared': fit.rvalue ** 2})
        rows.append(row)
    return pd.DataFrame(rows, columns=[group_col, 'n', 'slope', 'intercept', 'r_squared'])


def species_lip(data, ecn_k=None):
    """
    Build the species table and the ECN vs retention time diagnostic.

    Parameters
    ----------
    data : dict
        Output from annot_lip() or any later step.
    ecn_k : float, optional
        Double bond weight for ECN. Default: config['species']['ecn_k'].

    Returns
    -------
    dict
        Updated data dictionary with 'species' and 'ecn_fit'.
    """

    _banner("SPECIES ANNOTATION")

    config = data['config']
    cleaning = config['cleaning']
    ecn_k = config['species']['ecn_k'] if ecn_k is None else ecn_k

    print(f"\n[1/2] Building species table (ECN = C - {ecn_k} x DB)...")

    species = build_species_table(
        data['instrument'], data['annotated'], data['annotations'],
        rt_label=cleaning['rt_label'],
        precursor_label=cleaning['precursor_label'],
        product_label=cleaning['product_label'],
        label_column=cleaning['instrument_label_column'],
        ecn_k=ecn_k,
    )
    ecn_fit = fit_ecn_model(species)

    n_ecn = species['ECN'].notna().sum()
    print(f"  > {len(species)} species, {n_ecn} with composition data")
    for _, row in ecn_fit.iterrows():
        print(f"    {row['lipid_class']}: n={row['n']}, R^2={row['r_squared']:.3f}")

    tables = data['output_dirs']['tables']
    species.to_csv(os.path.join(tables, 'species_annotation.csv'), index=False)
    ecn_fit.to_csv(os.path.join(tables, 'ecn_fit.csv'), index=False)
    print(f"  > Saved: species_annotation.csv, ecn_fit.csv")

    print(f"\n[2/2] Creating ECN vs retention time plot...")
    fig = plot_ecn_rt(species, ecn_fit)
    fig.savefig(os.path.join(data['output_dirs']['qc'], '03_ecn_vs_rt.pdf'), dpi=300, bbox_inches='tight')
    plt.close(fig)
    print(f"  > Saved: 03_ecn_vs_rt.pdf")

    _banner("SPECIES ANNOTATION COMPLETE")
    print("="*80 + "\n")

    data_updated = copy.copy(data)
    data_updated['species'] = species
    data_updated['ecn_fit'] = ecn_fit
    return data_updated

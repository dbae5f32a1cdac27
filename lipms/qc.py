"""
Quality control functions for the lipidomics pipeline.

Computes per-feature coefficients of variation for each sample type
and generates the QC plots (CV distributions, concentrations across
run order).
"""

import copy
import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .utils import _banner
from .visualization import plot_cv_histogram, plot_run_order

# Acceptance bands reported for QC sample types
CV_BANDS = (20, 30)


def compute_cv(long_df, group_cols=('feature', 'SampleType'), value_col='conc'):
    """
    Coefficient of variation (%) per feature and sample type.

    CV = sample standard deviation / mean * 100. Groups with fewer than two
    values give NaN, groups with a zero mean give inf or NaN.

    Returns
    -------
    pd.DataFrame
        One row per group with columns ``n``, ``mean``, ``sd`` and ``CV``.
    """
    grouped = long_df.groupby(list(group_cols), observed=True, sort=True)[value_col]
    cv = grouped.agg(n='count', mean='mean', sd='std').reset_index()

    with np.errstate(divide='ignore', invalid='ignore'):
        cv['CV'] = cv['sd'] / cv['mean'] * 100

    return cv


def cv_wide(cv_df, index='feature', columns='SampleType'):
    """One row per feature, one CV column per sample type (presentation only)."""
    wide = cv_df.pivot(index=index, columns=columns, values='CV')
    wide.columns = [str(c) for c in wide.columns]
    return wide.reset_index()


def undefined_cv(cv_df):
    """Feature / sample type groups whose CV is NaN or infinite."""
    bad = cv_df['CV'].isna() | np.isinf(cv_df['CV'])
    return cv_df.loc[bad, ['feature', 'SampleType', 'n', 'mean']].reset_index(drop=True)


def cv_summary(cv_df, bands=CV_BANDS):
    """Share of features under each CV band, per sample type."""
    rows = []
    for sample_type, group in cv_df.groupby('SampleType', observed=True):
        defined = group['CV'].replace([np.inf, -np.inf], np.nan).dropna()
        row = {
            'SampleType': sample_type,
            'n_features': len(group),
            'n_defined': len(defined),
            'median_CV': defined.median() if len(defined) else np.nan,
        }
        for band in bands:
            row[f'pct_below_{band}'] = (defined < band).mean() * 100 if len(defined) else np.nan
        rows.append(row)
    return pd.DataFrame(rows)


def qc_lip(data, qc_types=None, display_order=None):
    """
    Compute CV metrics and generate QC plots.

    Creates:
    - CV table (long and wide) in tables/
    - CV histogram per sample type
    - Concentration vs run order plot

    Parameters
    ----------
    data : dict
        Output from prep_lip().
    qc_types : list of str, optional
        Sample types shown in the CV histogram. Default: all types.
    display_order : list of str, optional
        Plot layering order of sample types, drawn first to last.

    Returns
    -------
    dict
        Updated data dictionary with 'cv', 'cv_summary' and 'cv_undefined'.
    """

    _banner("QUALITY CONTROL ANALYSIS")

    long_df = data['long']
    output_dirs = data['output_dirs']
    qc_dir = output_dirs['qc']

    # =========================================================================
    # 1. COEFFICIENTS OF VARIATION
    # =========================================================================
    print(f"\n[1/3] Computing CV per feature and sample type...")

    cv = compute_cv(long_df)
    summary = cv_summary(cv)

    for _, row in summary.iterrows():
        print(f"  {row['SampleType']}: median CV {row['median_CV']:.1f}% "
              f"({row['pct_below_20']:.0f}% of features < 20%)")

    undefined = undefined_cv(cv)
    if len(undefined) > 0:
        print(f"  Warning: {len(undefined)} feature/type groups have undefined CV "
              f"(fewer than 2 values or zero mean):")
        for _, row in undefined.iterrows():
            print(f"    - {row['feature']} [{row['SampleType']}]")

    cv.to_csv(os.path.join(output_dirs['tables'], 'cv_long.csv'), index=False)
    cv_wide(cv).to_csv(os.path.join(output_dirs['tables'], 'cv_wide.csv'), index=False)
    print(f"  > Saved: cv_long.csv, cv_wide.csv")

    # =========================================================================
    # 2. CV HISTOGRAM
    # =========================================================================
    print(f"\n[2/3] Creating CV histogram...")

    fig = plot_cv_histogram(cv, sample_types=qc_types, display_order=display_order)
    fig.savefig(f"{qc_dir}/01_cv_histogram.pdf", dpi=300, bbox_inches='tight')
    plt.close(fig)
    print(f"  > Saved: 01_cv_histogram.pdf")

    # =========================================================================
    # 3. RUN ORDER
    # =========================================================================
    print(f"\n[3/3] Creating run order plot...")

    fig = plot_run_order(long_df, display_order=display_order)
    fig.savefig(f"{qc_dir}/02_run_order.pdf", dpi=300, bbox_inches='tight')
    plt.close(fig)
    print(f"  > Saved: 02_run_order.pdf")

    _banner("QC COMPLETE")
    print(f"\nPlots saved to: {qc_dir}")
    print("="*80 + "\n")

    data_updated = copy.copy(data)
    data_updated['cv'] = cv
    data_updated['cv_summary'] = summary
    data_updated['cv_undefined'] = undefined
    return data_updated

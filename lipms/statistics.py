"""
Statistical analysis functions for the lipidomics pipeline.

Per feature: log2 fold change between two groups, Welch's t-test,
multiple testing correction over all features, and significance
classification.
"""

import copy
import os

import numpy as np
import pandas as pd
from scipy.stats import ttest_ind
from statsmodels.stats.multitest import multipletests

from .utils import _banner

CORRECTION_METHODS = ('fdr_bh', 'fdr_by', 'holm', 'bonferroni', 'none')

NOT_SIGNIFICANT = 'not significant'


def resolve_groups(values, group_a=None, group_b=None):
    """
    Pick the two group codes of a binary stratification column.

    Without explicit codes, A is the lower and B the higher of the two
    observed codes.
    """
    codes = sorted(pd.unique(pd.Series(values).dropna()))

    if group_a is None and group_b is None:
        if len(codes) != 2:
            raise ValueError(f"Stratification column must have exactly 2 codes, found {codes}")
        return codes[0], codes[1]

    if group_a is None or group_b is None:
        raise ValueError("Specify both group_a and group_b, or neither")
    return group_a, group_b


def welch_test(values_a, values_b):
    """
    Two-sided Welch's t-test p-value of B vs A.

    NaN when either arm has fewer than two values or no variance.
    """
    a = np.asarray(values_a, dtype=float)
    b = np.asarray(values_b, dtype=float)
    a = a[~np.isnan(a)]
    b = b[~np.isnan(b)]

    if len(a) < 2 or len(b) < 2:
        return np.nan
    if np.var(a) == 0 or np.var(b) == 0:
        return np.nan

    _, pval = ttest_ind(b, a, equal_var=False)
    return float(pval)


def log2_fold_change(values_a, values_b):
    """log2(mean(B) / mean(A)); NaN for empty arms or a zero mean."""
    a = pd.Series(values_a, dtype=float).dropna()
    b = pd.Series(values_b, dtype=float).dropna()

    if len(a) == 0 or len(b) == 0:
        return np.nan

    mean_a, mean_b = a.mean(), b.mean()
    if mean_a == 0 or mean_b == 0:
        return np.nan

    with np.errstate(divide='ignore', invalid='ignore'):
        return float(np.log2(mean_b / mean_a))


def adjust_pvalues(pvalues, correction='fdr_bh'):
    """
    Correct p-values over the full feature vector in one pass.

    NaN p-values are left out of the correction and stay NaN.
    """
    if correction not in CORRECTION_METHODS:
        raise ValueError(f"Unknown correction '{correction}'. Options: {', '.join(CORRECTION_METHODS)}")

    pvalues = np.asarray(pvalues, dtype=float)
    if correction == 'none':
        return pvalues.copy()

    valid_mask = ~np.isnan(pvalues)
    adj_pvalues = np.full(len(pvalues), np.nan)
    if valid_mask.any():
        _, adj_p, _, _ = multipletests(pvalues[valid_mask], method=correction)
        adj_pvalues[valid_mask] = adj_p
    return adj_pvalues


def classify_significance(log2fc, fdr, fc_min=1.2, fdr_max=0.01, group_b_label='group B'):
    """
    Label features as higher, lower, or not significant in group B.

    Both bounds are strict: |log2FC| must exceed log2(fc_min) and FDR must
    be below fdr_max.
    """
    log2fc = np.asarray(log2fc, dtype=float)
    fdr = np.asarray(fdr, dtype=float)
    fc_cut = np.log2(fc_min)

    with np.errstate(invalid='ignore'):
        higher = (log2fc > fc_cut) & (fdr < fdr_max)
        lower = (log2fc < -fc_cut) & (fdr < fdr_max)

    return np.select(
        [higher, lower],
        [f'higher in {group_b_label}', f'lower in {group_b_label}'],
        default=NOT_SIGNIFICANT
    )


def compare_groups(df, group_col, group_a=None, group_b=None,
                   feature_cols=('lipid_name', 'species_name'), value_col='conc',
                   correction='fdr_bh', fc_min=1.2, fdr_max=0.01, group_labels=None):
    """
    Two-group comparison of every feature.

    Parameters
    ----------
    df : pd.DataFrame
        Long table joined with sample metadata.
    group_col : str
        Binary stratification column (e.g. gender code).
    group_a, group_b : optional
        Codes of the reference (A) and comparison (B) groups. Default:
        lower and higher of the two observed codes.
    feature_cols : tuple of str, optional
        Columns identifying a feature. Unannotated features (empty
        lipid_name) are still tested.
    correction : str, optional
        Multiple testing correction (default: 'fdr_bh', Benjamini-Hochberg).
        Options: 'fdr_bh', 'fdr_by', 'holm', 'bonferroni', 'none'.
    fc_min : float, optional
        Fold-change threshold (default: 1.2).
    fdr_max : float, optional
        FDR threshold (default: 0.01).
    group_labels : dict, optional
        Code -> display label used in the significance labels.

    Returns
    -------
    pd.DataFrame
        One row per feature with group sizes and means, ``log2FC``,
        ``p_value``, ``FDR`` and ``significance_label``.
    """
    if group_col not in df.columns:
        raise ValueError(f"Stratification column '{group_col}' not found")

    group_a, group_b = resolve_groups(df[group_col], group_a, group_b)
    group_labels = group_labels or {}
    label_b = group_labels.get(group_b, str(group_b))

    rows = []
    grouped = df.groupby(list(feature_cols), dropna=False, sort=True)
    for key, group in grouped:
        values_a = group.loc[group[group_col] == group_a, value_col]
        values_b = group.loc[group[group_col] == group_b, value_col]

        row = dict(zip(feature_cols, key))
        row.update({
            'n_a': int(values_a.notna().sum()),
            'n_b': int(values_b.notna().sum()),
            'mean_a': values_a.mean(),
            'mean_b': values_b.mean(),
            'log2FC': log2_fold_change(values_a, values_b),
            'p_value': welch_test(values_a, values_b),
        })
        rows.append(row)

    columns = list(feature_cols) + ['n_a', 'n_b', 'mean_a', 'mean_b', 'log2FC', 'p_value']
    results = pd.DataFrame(rows, columns=columns)

    results['FDR'] = adjust_pvalues(results['p_value'].values, correction)
    results['significance_label'] = classify_significance(
        results['log2FC'].values, results['FDR'].values,
        fc_min=fc_min, fdr_max=fdr_max, group_b_label=label_b
    )
    return results


def stat_lip(data, fc_min=None, fdr_max=None, correction=None):
    """
    Compare the two stratification groups for every lipid.

    Parameters
    ----------
    data : dict
        Output from cohort_lip().
    fc_min : float, optional
        Fold-change threshold. Default: config['statistics']['fc_min'].
    fdr_max : float, optional
        FDR threshold. Default: config['statistics']['fdr_max'].
    correction : str, optional
        Multiple testing correction. Default: config['statistics']['correction'].

    Returns
    -------
    dict
        Updated data dictionary with:
        - 'stats_results': DataFrame, one row per feature
        - 'significant_features': counts and names per label
        - 'stats_params': parameters used for analysis

    Example
    -------
    >>> data = cohort_lip(data)
    >>> data = stat_lip(data, fc_min=1.2, fdr_max=0.01)
    """

    _banner("STATISTICAL ANALYSIS")

    config = data['config']['statistics']
    fc_min = config['fc_min'] if fc_min is None else fc_min
    fdr_max = config['fdr_max'] if fdr_max is None else fdr_max
    correction = config['correction'] if correction is None else correction
    group_col = config['group_column']

    cohort = data['cohort']
    group_a, group_b = resolve_groups(cohort[group_col], config['group_a'], config['group_b'])

    print(f"\nGroups ({group_col}): A = {group_a}, B = {group_b}")
    print(f"\nThresholds:")
    print(f"  Fold change: {fc_min}")
    print(f"  FDR: {fdr_max}")
    print(f"  Correction: {correction}")

    # =========================================================================
    # 1. TEST EACH FEATURE
    # =========================================================================
    print(f"\n[1/2] Calculating statistics...")

    results = compare_groups(
        cohort, group_col,
        group_a=group_a, group_b=group_b,
        correction=correction, fc_min=fc_min, fdr_max=fdr_max,
        group_labels=config['group_labels'],
    )

    print(f"  > Tested {len(results)} features")

    undefined = results[results['p_value'].isna()]
    if len(undefined) > 0:
        print(f"  Warning: {len(undefined)} features have an undefined p-value "
              f"(fewer than 2 values or no variance in a group):")
        for name in undefined['species_name']:
            print(f"    - {name}")

    counts = results['significance_label'].value_counts()
    significant_features = {}
    for label, n in counts.items():
        print(f"    {label}: {n}")
        if label != NOT_SIGNIFICANT:
            significant_features[label] = {
                'total': int(n),
                'species': results.loc[results['significance_label'] == label, 'species_name'].tolist(),
            }

    # =========================================================================
    # 2. SAVE RESULTS
    # =========================================================================
    print(f"\n[2/2] Saving results...")

    threshold_label = f"fc{str(fc_min).replace('.', '')}_fdr{str(fdr_max).replace('.', '')}"
    results_path = os.path.join(data['output_dirs']['tables'], f'stats_results_{threshold_label}.csv')
    results.to_csv(results_path, index=False)
    print(f"  > Saved: stats_results_{threshold_label}.csv")

    data_updated = copy.copy(data)
    data_updated['stats_results'] = results
    data_updated['significant_features'] = significant_features
    data_updated['stats_params'] = {
        'group_column': group_col,
        'group_a': group_a,
        'group_b': group_b,
        'fc_min': fc_min,
        'fdr_max': fdr_max,
        'correction': correction,
        'threshold_label': threshold_label,
    }

    _banner("STATISTICAL ANALYSIS COMPLETE")
    print("\nNext step: viz_lip() for volcano plots")
    print("="*80 + "\n")

    return data_updated

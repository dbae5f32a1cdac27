"""
Visualization functions for the lipidomics pipeline.

QC figures (CV distributions, run order, ECN vs retention time) and
result figures (volcano plot, boxplots of significant lipids).
"""

import copy
import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .utils import _banner

# Consistent color palette for an arbitrary number of categories
_PALETTE = [
    '#1f77b4', '#2ca02c', '#d62728', '#ff7f0e', '#9467bd',
    '#8c564b', '#e377c2', '#7f7f7f', '#bcbd22', '#17becf',
]

_LABEL_COLORS = {
    'higher': '#E74C3C',
    'lower': '#3498DB',
    'not significant': '#CCCCCC',
}


def _category_color_map(categories):
    """Build a color map for an arbitrary number of categories."""
    return {cat: _PALETTE[i % len(_PALETTE)] for i, cat in enumerate(categories)}


def _display_order(present, display_order=None):
    """Categories in drawing order; unlisted ones follow in sorted order."""
    present = [str(p) for p in present]
    if not display_order:
        return sorted(present)
    ordered = [c for c in display_order if c in present]
    return ordered + sorted(c for c in present if c not in ordered)


def volcano_data(stats_results, fc_min=1.2, fdr_max=0.01):
    """
    Coordinates for a volcano plot.

    Adds ``neg_log10_FDR`` (zero FDRs are floored at 1e-300) and the
    threshold lines as attributes ``x_cut`` / ``y_cut``.
    """
    plot_df = stats_results.copy()
    fdr = plot_df['FDR'].replace(0, 1e-300)
    with np.errstate(divide='ignore', invalid='ignore'):
        plot_df['neg_log10_FDR'] = -np.log10(fdr)
    plot_df.attrs['x_cut'] = float(np.log2(fc_min))
    plot_df.attrs['y_cut'] = float(-np.log10(fdr_max))
    return plot_df


def _label_color(label):
    for key, color in _LABEL_COLORS.items():
        if label.startswith(key):
            return color
    return _LABEL_COLORS['not significant']


def plot_volcano(stats_results, fc_min=1.2, fdr_max=0.01, title='Volcano Plot', label_top=0):
    """Volcano plot of log2FC vs -log10 FDR, colored by significance label."""
    plot_df = volcano_data(stats_results, fc_min, fdr_max)

    fig, ax = plt.subplots(figsize=(10, 8))

    labels = sorted(plot_df['significance_label'].unique(), key=lambda lab: lab != 'not significant')
    for label in labels:
        subset = plot_df[plot_df['significance_label'] == label]
        ax.scatter(
            subset['log2FC'],
            subset['neg_log10_FDR'],
            c=_label_color(label),
            label=f"{label} ({len(subset)})",
            s=30,
            alpha=0.7,
            edgecolors='none'
        )

    x_cut, y_cut = plot_df.attrs['x_cut'], plot_df.attrs['y_cut']
    ax.axhline(y_cut, color='black', linestyle='--', linewidth=1, alpha=0.5, label=f'FDR = {fdr_max}')
    ax.axvline(x_cut, color='black', linestyle='--', linewidth=1, alpha=0.5)
    ax.axvline(-x_cut, color='black', linestyle='--', linewidth=1, alpha=0.5)

    if label_top > 0:
        significant = plot_df[plot_df['significance_label'] != 'not significant']
        top = significant.nlargest(label_top, 'neg_log10_FDR')
        for _, row in top.iterrows():
            name = row['lipid_name'] if pd.notna(row['lipid_name']) else row['species_name']
            ax.annotate(
                name,
                xy=(row['log2FC'], row['neg_log10_FDR']),
                xytext=(10, 10),
                textcoords='offset points',
                fontsize=8,
                alpha=0.8,
                arrowprops=dict(arrowstyle='-', lw=0.5, color='black')
            )

    ax.set_xlabel('Log2 Fold Change', fontsize=12, fontweight='bold')
    ax.set_ylabel('-Log10 FDR', fontsize=12, fontweight='bold')
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.legend(loc='upper left', fontsize=10)
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def plot_cv_histogram(cv_df, sample_types=None, display_order=None, bins=50):
    """Histogram of feature CVs, one layer per sample type."""
    present = cv_df['SampleType'].astype(str).unique()
    order = _display_order(present, display_order)
    if sample_types is not None:
        order = [t for t in order if t in sample_types]
    colors = _category_color_map(order)

    fig, ax = plt.subplots(figsize=(10, 6))
    for sample_type in order:
        values = cv_df.loc[cv_df['SampleType'].astype(str) == sample_type, 'CV']
        values = values.replace([np.inf, -np.inf], np.nan).dropna()
        if len(values) == 0:
            continue
        ax.hist(values, bins=bins, alpha=0.5, color=colors[sample_type],
                label=f"{sample_type} (median {values.median():.1f}%)")

    for band in (20, 30):
        ax.axvline(band, color='black', linestyle='--', linewidth=1, alpha=0.5)

    ax.set_xlabel('CV (%)', fontsize=12)
    ax.set_ylabel('Features', fontsize=12)
    ax.set_title('Coefficient of Variation by Sample Type', fontsize=14, fontweight='bold')
    ax.legend(fontsize=10, loc='upper right')
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def plot_run_order(long_df, display_order=None, log_scale=True):
    """Summed concentration per injection across run order, colored by sample type."""
    totals = long_df.groupby(['run_id', 'SampleType'], observed=True)['conc'].sum(min_count=1).reset_index()
    totals['SampleType'] = totals['SampleType'].astype(str)
    order = _display_order(totals['SampleType'].unique(), display_order)

    fig, ax = plt.subplots(figsize=(12, 5))
    sns.scatterplot(
        data=totals,
        x='run_id',
        y='conc',
        hue='SampleType',
        hue_order=order,
        palette=_category_color_map(order),
        s=40,
        ax=ax
    )
    if log_scale:
        ax.set_yscale('log')

    ax.set_xlabel('Run order', fontsize=12)
    ax.set_ylabel('Total concentration', fontsize=12)
    ax.set_title('Total Lipid Signal Across Run Order', fontsize=14, fontweight='bold')
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def plot_ecn_rt(species, ecn_fit=None, group_col='lipid_class'):
    """Retention time vs ECN per lipid class, with the per-class linear fit."""
    usable = species.dropna(subset=['ECN', 'RT', group_col])
    classes = sorted(usable[group_col].unique())
    colors = _category_color_map(classes)

    fig, ax = plt.subplots(figsize=(10, 8))
    for lipid_class in classes:
        subset = usable[usable[group_col] == lipid_class]
        ax.scatter(subset['ECN'], subset['RT'], c=colors[lipid_class],
                   label=lipid_class, s=40, alpha=0.8, edgecolors='black', linewidth=0.5)

        if ecn_fit is not None:
            fit = ecn_fit[ecn_fit[group_col] == lipid_class]
            if len(fit) and pd.notna(fit['slope'].iloc[0]):
                x = np.linspace(subset['ECN'].min(), subset['ECN'].max(), 20)
                y = fit['intercept'].iloc[0] + fit['slope'].iloc[0] * x
                ax.plot(x, y, color=colors[lipid_class], linewidth=1)

    ax.set_xlabel('ECN', fontsize=12)
    ax.set_ylabel('Retention time (min)', fontsize=12)
    ax.set_title('Equivalent Carbon Number vs Retention Time', fontsize=14, fontweight='bold')
    if classes:
        ax.legend(fontsize=8, loc='best', ncol=2)
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def plot_significant_boxplots(cohort, stats_results, group_col, group_labels=None, top_n=20):
    """Boxplots of log2 concentrations of the top significant lipids by group."""
    significant = stats_results[stats_results['significance_label'] != 'not significant']
    top = significant.nsmallest(top_n, 'FDR')
    if len(top) == 0:
        return None

    plot_df = cohort[cohort['species_name'].isin(top['species_name'])].copy()
    plot_df['Lipid'] = plot_df['lipid_name'].fillna(plot_df['species_name'])
    plot_df['Group'] = plot_df[group_col].map(lambda c: (group_labels or {}).get(c, str(c)))
    with np.errstate(divide='ignore', invalid='ignore'):
        plot_df['log2_conc'] = np.log2(plot_df['conc'])

    fig, ax = plt.subplots(figsize=(max(8, len(top) * 0.6), 6))
    sns.boxplot(data=plot_df, x='Lipid', y='log2_conc', hue='Group', ax=ax, fliersize=2)
    ax.set_xticklabels(ax.get_xticklabels(), rotation=45, ha='right', fontsize=8)
    ax.set_xlabel('')
    ax.set_ylabel('Log2 concentration', fontsize=12)
    ax.set_title(f'Top {len(top)} Significant Lipids', fontsize=14, fontweight='bold')
    fig.tight_layout()
    return fig


def viz_lip(data, label_top=20, top_n=20):
    """
    Create result plots.

    Creates:
    - Volcano plots (labeled and unlabeled versions)
    - Boxplots of the top significant lipids

    Parameters
    ----------
    data : dict
        Output from stat_lip().
    label_top : int, optional
        Number of significant lipids labeled on the volcano plot.
    top_n : int, optional
        Number of lipids in the boxplot (default: 20).

    Returns
    -------
    dict
        Unchanged data dictionary with 'figures' listing saved files.
    """

    _banner("CREATING VISUALIZATIONS")

    stats_results = data['stats_results']
    params = data['stats_params']
    viz_dir = data['output_dirs']['viz']
    label = params['threshold_label']
    saved = []

    print(f"\n[1/2] Creating volcano plots...")
    for n_labels, suffix in [(label_top, ''), (0, '_clean')]:
        fig = plot_volcano(
            stats_results,
            fc_min=params['fc_min'],
            fdr_max=params['fdr_max'],
            title=f"Volcano Plot: {params['group_b']} vs {params['group_a']}",
            label_top=n_labels,
        )
        path = os.path.join(viz_dir, f'volcano_{label}{suffix}.pdf')
        fig.savefig(path, dpi=300, bbox_inches='tight')
        plt.close(fig)
        saved.append(path)
        print(f"  > Saved: {os.path.basename(path)}")

    print(f"\n[2/2] Creating boxplots of significant lipids...")
    fig = plot_significant_boxplots(
        data['cohort'], stats_results, params['group_column'],
        group_labels=data['config']['statistics']['group_labels'], top_n=top_n,
    )
    if fig is None:
        print(f"  Warning: No significant lipids to plot")
    else:
        path = os.path.join(viz_dir, f'boxplot_significant_{label}.pdf')
        fig.savefig(path, dpi=300, bbox_inches='tight')
        plt.close(fig)
        saved.append(path)
        print(f"  > Saved: {os.path.basename(path)}")

    _banner("VISUALIZATION COMPLETE")
    print(f"\nPlots saved to: {viz_dir}")
    print("="*80 + "\n")

    data_updated = copy.copy(data)
    data_updated['figures'] = saved
    return data_updated

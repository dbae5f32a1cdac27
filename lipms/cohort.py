"""
Sample metadata functions for the lipidomics pipeline.

Joins clinical and demographic metadata onto the annotated long table
and applies the cohort selection filters.
"""

import copy
import os

import pandas as pd

from .utils import _banner


def load_sample_metadata(path, sample_id_column='SampleID'):
    """
    Read the sample metadata CSV.

    The identifier column is read as text, so numeric IDs keep their
    written form even when some cells are blank. Rows without an ID are
    dropped.
    """
    meta = pd.read_csv(path, dtype={sample_id_column: str})

    if sample_id_column not in meta.columns:
        raise ValueError(f"Sample id column '{sample_id_column}' not found in {path}")

    meta[sample_id_column] = meta[sample_id_column].str.strip()
    missing = meta[sample_id_column].isna() | (meta[sample_id_column] == '')
    if missing.any():
        print(f"  Warning: {missing.sum()} metadata rows without a sample id dropped")
        meta = meta[~missing].reset_index(drop=True)

    if sample_id_column != 'SampleID':
        meta = meta.rename(columns={sample_id_column: 'SampleID'})
    return meta


def _filter_masks(df, filters):
    """One boolean mask per filter (column -> value or list), in filter order."""
    masks = {}
    for column, allowed in filters.items():
        if column not in df.columns:
            raise ValueError(f"Filter column '{column}' not found")
        if isinstance(allowed, (list, tuple, set)):
            masks[column] = df[column].isin(list(allowed))
        else:
            masks[column] = df[column] == allowed
    return masks


def join_sample_metadata(long_df, sample_meta, filters=None):
    """
    Inner-join sample metadata on SampleID and apply cohort filters.

    Rows whose SampleID has no metadata are dropped. Filters are ANDed.

    Returns
    -------
    tuple
        (cohort, audit). ``audit`` holds the row counts at each stage;
        ``rows_filtered_by`` counts the joined rows each filter rejects on
        its own, so a row failing two filters is counted under both.
    """
    filters = filters or {}

    meta_cols = [c for c in sample_meta.columns if c == 'SampleID' or c not in long_df.columns]
    joined = long_df.merge(sample_meta[meta_cols], on='SampleID', how='inner', sort=False)

    masks = _filter_masks(joined, filters)
    mask = pd.Series(True, index=joined.index)
    for column_mask in masks.values():
        mask &= column_mask
    cohort = joined[mask].reset_index(drop=True)

    audit = {
        'rows_in': len(long_df),
        'rows_without_metadata': len(long_df) - len(joined),
        'rows_filtered_by': {column: int((~m).sum()) for column, m in masks.items()},
        'rows_filtered': int((~mask).sum()),
        'rows_out': len(cohort),
        'samples_out': cohort['SampleID'].nunique(),
    }
    return cohort, audit


def cohort_lip(data, filters=None):
    """
    Join sample metadata and select the analysis cohort.

    Parameters
    ----------
    data : dict
        Output from annot_lip().
    filters : dict, optional
        Column -> allowed value(s). Default: config['cohort']['filters'].

    Returns
    -------
    dict
        Updated data dictionary with 'sample_meta', 'cohort' and 'cohort_audit'.
    """

    _banner("SAMPLE METADATA AND COHORT SELECTION")

    config = data['config']
    filters = config['cohort']['filters'] if filters is None else filters

    print(f"\n[1/2] Loading sample metadata...")
    sample_meta = load_sample_metadata(
        config['data_paths']['sample_metadata'],
        sample_id_column=config['cohort']['sample_id_column'],
    )
    print(f"  > {len(sample_meta)} samples, {sample_meta.shape[1] - 1} fields")

    print(f"\n[2/2] Joining and filtering...")
    for column, allowed in filters.items():
        print(f"  Filter: {column} in {allowed}")

    cohort, audit = join_sample_metadata(data['annotated'], sample_meta, filters)

    print(f"  > Rows without metadata dropped: {audit['rows_without_metadata']}")
    for column, n_rejected in audit['rows_filtered_by'].items():
        print(f"  > Rows rejected by {column} filter: {n_rejected}")
    print(f"  > Rows removed by filters: {audit['rows_filtered']}")
    print(f"  > Remaining: {audit['rows_out']} rows, {audit['samples_out']} samples")

    if audit['rows_out'] == 0:
        print(f"  Warning: no rows left after cohort selection")

    cohort.to_csv(os.path.join(data['output_dirs']['tables'], 'cohort_long.csv'), index=False)
    print(f"  > Saved: cohort_long.csv")

    _banner("COHORT SELECTION COMPLETE")
    print("\nNext step: stat_lip() for statistical analysis")
    print("="*80 + "\n")

    data_updated = copy.copy(data)
    data_updated['sample_meta'] = sample_meta
    data_updated['cohort'] = cohort
    data_updated['cohort_audit'] = audit
    return data_updated

"""
Data preparation functions for the lipidomics pipeline.

Handles loading the raw wide peak-area table, stripping the instrument
rows, cleaning headers and sample identifiers, and reshaping the sample
table into long (tidy) form.
"""

import copy
import os
import re

import numpy as np
import pandas as pd

from .utils import _banner, _create_output_dirs, _load_config

# Sample-level columns carried through every reshape; everything else is a feature
SAMPLE_COLUMNS = ['run_id', 'filename', 'SampleType', 'SampleID', 'batch']


def feature_columns(df, id_cols=None):
    """Return the lipid feature columns of a wide table, in table order."""
    id_cols = SAMPLE_COLUMNS if id_cols is None else id_cols
    return [c for c in df.columns if c not in id_cols and c != 'instrument_row']


def clean_wide_table(raw, header_suffix=' Area', filename_suffix='.mzML',
                     type_column='type', n_instrument_rows=6,
                     sample_id_delimiter='#'):
    """
    Clean a raw wide peak-area table.

    The first ``n_instrument_rows`` rows of the export hold per-transition
    instrument values (retention time, Q1/Q3 m/z, QC flags) rather than
    samples. They are split off and returned separately, tagged with an
    explicit ``instrument_row`` index.

    Parameters
    ----------
    raw : pd.DataFrame
        Table as read from the instrument export.
    header_suffix : str, optional
        Suffix stripped from every feature column header.
    filename_suffix : str, optional
        Suffix stripped from the ``filename`` values.
    type_column : str, optional
        Column holding the sample type, renamed to ``SampleType``.
    n_instrument_rows : int, optional
        Number of leading instrument rows (default: 6).
    sample_id_delimiter : str, optional
        ``SampleID`` is the part of ``filename`` before this delimiter.

    Returns
    -------
    tuple of pd.DataFrame
        (samples, instrument). ``samples`` has one row per injection with
        ``run_id`` (1-based acquisition order), ``filename``,
        ``SampleType`` (categorical), ``SampleID``, ``batch`` and one
        numeric column per feature.
    """
    df = raw.copy()

    if header_suffix:
        df.columns = [
            c[:-len(header_suffix)] if isinstance(c, str) and c.endswith(header_suffix) else c
            for c in df.columns
        ]

    if type_column not in df.columns:
        raise ValueError(f"Sample type column '{type_column}' not found in input table")
    if 'filename' not in df.columns:
        raise ValueError("Column 'filename' not found in input table")

    df = df.rename(columns={type_column: 'SampleType'})

    filenames = df['filename'].astype(str)
    if filename_suffix:
        filenames = filenames.str.removesuffix(filename_suffix)
    df['filename'] = filenames

    instrument = df.iloc[:n_instrument_rows].copy().reset_index(drop=True)
    instrument.insert(0, 'instrument_row', np.arange(1, len(instrument) + 1))

    samples = df.iloc[n_instrument_rows:].copy().reset_index(drop=True)

    features = feature_columns(samples)
    samples[features] = samples[features].apply(pd.to_numeric, errors='coerce')
    samples['SampleType'] = samples['SampleType'].astype('category')

    delim = re.escape(sample_id_delimiter)
    samples['SampleID'] = samples['filename'].str.extract(f'^([^{delim}]*){delim}', expand=False)

    samples.insert(0, 'run_id', np.arange(1, len(samples) + 1))

    ordered = [c for c in SAMPLE_COLUMNS if c in samples.columns]
    samples = samples[ordered + features]

    return samples, instrument


def wide_to_long(wide, id_cols=None):
    """
    Pivot every feature column into (``feature``, ``conc``) pairs.

    Missing concentrations are kept as NaN. Rows are stably sorted by
    feature name so that run order is preserved within each feature.
    """
    if id_cols is None:
        id_cols = [c for c in SAMPLE_COLUMNS if c in wide.columns]
    features = feature_columns(wide, id_cols)

    long_df = wide.melt(
        id_vars=id_cols,
        value_vars=features,
        var_name='feature',
        value_name='conc'
    )

    long_df = long_df.sort_values('feature', kind='mergesort').reset_index(drop=True)
    return long_df


def long_to_wide(long_df, id_cols=None, feature_col='feature', value_col='conc'):
    """Inverse of wide_to_long: one row per run_id, one column per feature."""
    if id_cols is None:
        id_cols = [c for c in SAMPLE_COLUMNS if c in long_df.columns]

    values = long_df.pivot(index='run_id', columns=feature_col, values=value_col)
    values.columns.name = None

    ids = long_df[id_cols].drop_duplicates('run_id').set_index('run_id')
    wide = ids.join(values).reset_index()
    return wide.sort_values('run_id').reset_index(drop=True)


def prep_lip(config_path):
    """
    Load and prepare lipidomics peak-area data for analysis.

    This function:
    1. Loads the YAML configuration file
    2. Reads the wide peak-area CSV
    3. Splits off the instrument rows and cleans headers, types and filenames
    4. Derives SampleID and run order
    5. Reshapes the sample table into long form
    6. Creates output directory structure

    Parameters
    ----------
    config_path : str
        Path to YAML configuration file.

    Returns
    -------
    dict
        Dictionary containing:
        - 'wide': cleaned sample table (one row per injection)
        - 'instrument': retained instrument rows
        - 'long': tidy table (one row per injection and feature)
        - 'feature_cols': feature names after header cleaning
        - 'config': loaded configuration dictionary
        - 'metadata': summary counts
        - 'output_dirs': paths to output directories

    Example
    -------
    >>> data = prep_lip('config/experiment.yaml')
    >>> data['long'].head()
    """

    _banner("STEP 1: LOADING DATA AND CONFIGURATION")

    config = _load_config(config_path)
    cleaning = config['cleaning']

    print(f"\n> Configuration loaded")
    print(f"  Experiment: {config['experiment']['name']}")

    # =========================================================================
    # 1. LOAD PEAK AREAS
    # =========================================================================
    print(f"\n[1/3] Loading peak-area table...")

    input_file = config['data_paths']['input_file']
    raw = pd.read_csv(input_file)
    print(f"  > Loaded {raw.shape[0]} rows, {raw.shape[1]} columns")

    # =========================================================================
    # 2. CLEAN
    # =========================================================================
    print(f"\n[2/3] Cleaning table...")

    wide, instrument = clean_wide_table(
        raw,
        header_suffix=cleaning['header_suffix'],
        filename_suffix=cleaning['filename_suffix'],
        type_column=cleaning['type_column'],
        n_instrument_rows=cleaning['n_instrument_rows'],
        sample_id_delimiter=cleaning['sample_id_delimiter'],
    )
    features = feature_columns(wide)

    print(f"  > Retained {len(instrument)} instrument rows")
    print(f"  > {len(wide)} injections x {len(features)} features")

    type_counts = wide['SampleType'].value_counts(sort=False)
    for sample_type, n in type_counts.items():
        print(f"    {sample_type}: {n}")

    no_id = wide['SampleID'].isna().sum()
    if no_id > 0:
        print(f"  Warning: {no_id} injections have no SampleID "
              f"(no '{cleaning['sample_id_delimiter']}' in filename)")

    # =========================================================================
    # 3. RESHAPE
    # =========================================================================
    print(f"\n[3/3] Reshaping to long format...")

    long_df = wide_to_long(wide)
    n_missing = long_df['conc'].isna().sum()
    print(f"  > {len(long_df)} rows ({n_missing} missing concentrations)")

    output_dir = config['data_paths']['output_dir']
    output_dirs = _create_output_dirs(output_dir)

    long_path = os.path.join(output_dirs['tables'], 'long_table.csv')
    long_df.to_csv(long_path, index=False)
    print(f"  > Saved: long_table.csv")

    metadata = {
        'n_injections': len(wide),
        'n_features': len(features),
        'n_instrument_rows': len(instrument),
        'n_without_sample_id': int(no_id),
        'sample_types': [str(t) for t in wide['SampleType'].cat.categories],
    }

    _banner("DATA PREPARATION COMPLETE")
    print(f"\nInjections:    {metadata['n_injections']}")
    print(f"Features:      {metadata['n_features']}")
    print(f"Sample types:  {', '.join(metadata['sample_types'])}")
    print("\n" + "="*80 + "\n")

    return {
        'wide': wide,
        'instrument': instrument,
        'long': long_df,
        'feature_cols': features,
        'config': copy.deepcopy(config),
        'metadata': metadata,
        'output_dirs': output_dirs,
    }

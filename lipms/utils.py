"""
Utility functions for the lipidomics pipeline.

Internal helpers for configuration loading, directory management,
and the stage error raised by the name normalization step.
"""

import copy
import os

import yaml


DEFAULT_CONFIG = {
    'experiment': {
        'name': 'Lipidomics',
        'description': '',
    },
    'data_paths': {
        'input_file': None,
        'sample_metadata': None,
        'output_dir': 'results',
    },
    'cleaning': {
        'header_suffix': ' Area',
        'filename_suffix': '.mzML',
        'type_column': 'type',
        'n_instrument_rows': 6,
        'sample_id_delimiter': '#',
        'instrument_label_column': 'filename',
        'rt_label': 'RT',
        'precursor_label': 'Q1',
        'product_label': 'Q3',
    },
    'annotation': {
        'water_loss_token': ' M-H2O',
        'grammar': 'LipidMaps',
        'timeout': 60,
    },
    'cohort': {
        'sample_id_column': 'SampleID',
        'filters': {'SampleType': 'SAMPLE'},
    },
    'statistics': {
        'group_column': 'Gender',
        'group_a': None,
        'group_b': None,
        'group_labels': {},
        'fc_min': 1.2,
        'fdr_max': 0.01,
        'correction': 'fdr_bh',
    },
    'species': {
        'ecn_k': 0.5,
    },
}


class ParserStageError(RuntimeError):
    """Raised when the lipid name parser cannot annotate the feature names."""

    def __init__(self, message, stage='name normalization'):
        self.stage = stage
        super().__init__(f"[{stage}] {message}")


def _merge_config(defaults, overrides):
    """Recursively overlay user values on top of defaults."""
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            # Filters and label maps replace the default wholesale
            if key in ('filters', 'group_labels'):
                merged[key] = copy.deepcopy(value)
            else:
                merged[key] = _merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_config(config_path):
    """Load YAML config file and fill in defaults."""
    with open(config_path, 'r') as f:
        user_config = yaml.safe_load(f) or {}
    return _merge_config(DEFAULT_CONFIG, user_config)


def _create_output_dirs(base_dir):
    """Create organized output directory structure."""
    dirs = {
        'base': base_dir,
        'figures': f"{base_dir}/figures",
        'qc': f"{base_dir}/figures/qc",
        'viz': f"{base_dir}/figures/viz",
        'tables': f"{base_dir}/tables",
        'export': f"{base_dir}/export",
    }

    for dir_path in dirs.values():
        os.makedirs(dir_path, exist_ok=True)

    return dirs


def _banner(title):
    print("\n" + "="*80)
    print(title)
    print("="*80)

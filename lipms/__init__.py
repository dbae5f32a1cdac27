"""
Lipidomics Analysis Pipeline
============================

A reusable Python package for analyzing targeted LC-MS lipidomics data.

Main Functions
--------------
prep_lip()      - Load, clean and reshape the peak-area table
qc_lip()        - CV per feature and sample type, QC plots
annot_lip()     - Normalize lipid names with the Goslin parser
cohort_lip()    - Join sample metadata and select the cohort
stat_lip()      - Fold changes, Welch's t-tests, FDR
species_lip()   - Species table and ECN vs retention time
viz_lip()       - Volcano plots and boxplots
export_lip()    - Wide table for web-based analysis tools
run_pipeline()  - All of the above

Example Workflow
----------------
>>> from lipms import prep_lip, qc_lip, annot_lip, cohort_lip, stat_lip
>>>
>>> data = prep_lip('config/experiment.yaml')
>>> data = qc_lip(data)
>>> data = annot_lip(data)
>>> data = cohort_lip(data)
>>> data = stat_lip(data)
"""

from .prep import prep_lip, clean_wide_table, wide_to_long, long_to_wide
from .qc import qc_lip, compute_cv, cv_wide
from .annotation import (
    annot_lip,
    normalize_names,
    rewrite_name,
    LipidNameParser,
    GoslinNameParser,
)
from .cohort import cohort_lip, join_sample_metadata
from .statistics import stat_lip, compare_groups
from .species import species_lip, build_species_table
from .visualization import viz_lip
from .export import export_lip
from .pipeline import run_pipeline
from .utils import ParserStageError


__version__ = "0.1.0"

__all__ = [
    'prep_lip',
    'qc_lip',
    'annot_lip',
    'cohort_lip',
    'stat_lip',
    'species_lip',
    'viz_lip',
    'export_lip',
    'run_pipeline',
    'clean_wide_table',
    'wide_to_long',
    'long_to_wide',
    'compute_cv',
    'cv_wide',
    'normalize_names',
    'rewrite_name',
    'LipidNameParser',
    'GoslinNameParser',
    'join_sample_metadata',
    'compare_groups',
    'build_species_table',
    'ParserStageError',
]

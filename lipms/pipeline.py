"""
End-to-end run of the lipidomics pipeline.
"""

from .annotation import annot_lip
from .cohort import cohort_lip
from .export import export_lip
from .prep import prep_lip
from .qc import qc_lip
from .species import species_lip
from .statistics import stat_lip
from .visualization import viz_lip


def run_pipeline(config_path, parser=None, make_plots=True):
    """
    Run every step on one dataset.

    prep -> qc -> annot -> cohort -> stat -> species -> viz -> export

    Parameters
    ----------
    config_path : str
        Path to YAML configuration file.
    parser : LipidNameParser, optional
        Lipid name parser. Default: GoslinNameParser().
    make_plots : bool, optional
        Create the result figures (default: True). QC figures are always made.

    Returns
    -------
    dict
        Final data dictionary; 'export_path' holds the analysis tool table.

    Example
    -------
    >>> from lipms import run_pipeline
    >>> data = run_pipeline('config/experiment.yaml')
    >>> data['unparsed_names']
    """
    data = prep_lip(config_path)
    data = qc_lip(data)
    data = annot_lip(data, parser=parser)
    data = cohort_lip(data)
    data = stat_lip(data)
    data = species_lip(data)
    if make_plots:
        data = viz_lip(data)
    data['export_path'] = export_lip(data)
    return data

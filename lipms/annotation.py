"""
Lipid name normalization for the lipidomics pipeline.

Rewrites instrument feature names into a syntax the Goslin grammars
accept, submits the distinct names to the parser in a single call, and
joins the returned annotations back onto the long table.
"""

import copy
import os
import re
import threading

import pandas as pd

from .utils import ParserStageError, _banner

ANNOTATION_COLUMNS = [
    'original_name', 'normalized_name', 'lipid_class', 'lipid_category',
    'total_c', 'total_db',
]

# Class abbreviations used by the instrument method -> Goslin names
CLASS_REPLACEMENTS = [
    ('MHCer', 'HexCer'),
    ('DHCer', 'Hex2Cer'),
    ('Sphd', 'Sph d'),
]

_CHAIN_PREFIX = re.compile(r'/C(?=\d)')


def rewrite_name(name, water_loss_token=' M-H2O'):
    """
    Rewrite one feature name into parser-compatible syntax.

    >>> rewrite_name('Cer d18:1/C24:0')
    'Cer d18:1/24:0'
    """
    if water_loss_token:
        name = name.replace(water_loss_token, '')
    name = _CHAIN_PREFIX.sub('/', name)
    for old, new in CLASS_REPLACEMENTS:
        name = name.replace(old, new)
    return name


def rewrite_names(names, water_loss_token=' M-H2O'):
    """Map each distinct original name to its rewritten form."""
    return {name: rewrite_name(name, water_loss_token) for name in pd.unique(pd.Series(names))}


class LipidNameParser:
    """
    Parser capability used by the name normalization step.

    Subclasses implement ``parse(names, grammar)`` and return a DataFrame
    with ``ANNOTATION_COLUMNS``. Names that cannot be parsed are omitted.
    """

    def parse(self, names, grammar):
        raise NotImplementedError


class GoslinNameParser(LipidNameParser):
    """Annotates lipid names with the pygoslin grammars."""

    GRAMMARS = {
        'LipidMaps': 'LipidMapsParser',
        'Goslin': 'GoslinParser',
        'SwissLipids': 'SwissLipidsParser',
        'HMDB': 'HmdbParser',
        'Shorthand2020': 'ShorthandParser',
    }

    def __init__(self):
        self._parsers = {}

    def _get_parser(self, grammar):
        if grammar not in self.GRAMMARS:
            raise ValueError(f"Unknown grammar '{grammar}'. Options: {', '.join(self.GRAMMARS)}")

        if grammar not in self._parsers:
            from pygoslin.parser import Parser
            self._parsers[grammar] = getattr(Parser, self.GRAMMARS[grammar])()
        return self._parsers[grammar]

    def parse(self, names, grammar='LipidMaps'):
        from pygoslin.domain.LipidExceptions import LipidException
        from pygoslin.domain.LipidLevel import LipidLevel

        parser = self._get_parser(grammar)

        records = []
        for name in names:
            try:
                lipid = parser.parse(name)
            except LipidException:
                continue

            info = lipid.lipid.info
            # int, or a position -> geometry dict when positions are known
            double_bonds = info.double_bonds
            if not isinstance(double_bonds, int):
                double_bonds = len(double_bonds)
            records.append({
                'original_name': name,
                'normalized_name': lipid.get_lipid_string(),
                'lipid_class': lipid.get_extended_class(),
                'lipid_category': lipid.get_lipid_string(LipidLevel.CATEGORY),
                'total_c': info.num_carbon,
                'total_db': double_bonds,
            })

        return pd.DataFrame(records, columns=ANNOTATION_COLUMNS)


def _call_parser(parser, names, grammar, timeout):
    """
    Run the single parser call, bounded by ``timeout`` seconds.

    The call runs in a daemon thread, so a parser that never answers does
    not keep the interpreter alive after the stage has failed.
    """
    outcome = {}

    def _run():
        try:
            outcome['result'] = parser.parse(names, grammar)
        except Exception as e:
            outcome['error'] = e

    worker = threading.Thread(target=_run, name='lipid-name-parser', daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        raise ParserStageError(f"Lipid name parser did not answer within {timeout} s")

    error = outcome.get('error')
    if isinstance(error, ParserStageError):
        raise error
    if isinstance(error, ImportError):
        raise ParserStageError(f"Lipid name parser is not available: {error}") from error
    if error is not None:
        raise ParserStageError(f"Lipid name parser failed: {error}") from error
    if 'result' not in outcome:
        raise ParserStageError("Lipid name parser stopped without a response")
    return outcome['result']


def _validate_annotations(annotations, submitted):
    """Check the parser response has the expected shape and only known names."""
    if not isinstance(annotations, pd.DataFrame):
        raise ParserStageError(
            f"Malformed parser response: expected a DataFrame, got {type(annotations).__name__}"
        )

    missing = [c for c in ANNOTATION_COLUMNS if c not in annotations.columns]
    if missing:
        raise ParserStageError(f"Malformed parser response: missing columns {missing}")

    unknown = set(annotations['original_name']) - set(submitted)
    if unknown:
        raise ParserStageError(
            f"Malformed parser response: {len(unknown)} names were never submitted "
            f"(e.g. {sorted(unknown)[0]!r})"
        )

    return annotations.drop_duplicates('original_name').reset_index(drop=True)


def normalize_names(long_df, parser, grammar='LipidMaps', water_loss_token=' M-H2O',
                    timeout=60, feature_col='feature'):
    """
    Rewrite feature names, annotate them, and join the annotations back.

    Parameters
    ----------
    long_df : pd.DataFrame
        Long table from wide_to_long().
    parser : LipidNameParser
        Object with a ``parse(names, grammar)`` method.
    grammar : str, optional
        Nomenclature grammar passed to the parser (default: 'LipidMaps').
    water_loss_token : str, optional
        Token removed from names before parsing.
    timeout : float, optional
        Seconds allowed for the parser call. None waits indefinitely.

    Returns
    -------
    tuple
        (annotated, annotations, unparsed). ``annotated`` is the long table
        with ``species_name_original``, ``species_name``, ``lipid_name`` and
        the composition columns; rows of unparsed names keep their
        concentrations with empty annotation fields. ``annotations`` is the
        validated parser output. ``unparsed`` is the sorted list of
        rewritten names the parser did not return.

    Raises
    ------
    ParserStageError
        If the parser is unavailable, fails, times out, or returns a
        malformed response.
    """
    name_map = rewrite_names(long_df[feature_col], water_loss_token)
    submitted = sorted(set(name_map.values()))

    annotations = _call_parser(parser, submitted, grammar, timeout)
    annotations = _validate_annotations(annotations, submitted)

    unparsed = sorted(set(submitted) - set(annotations['original_name']))

    annotated = long_df.rename(columns={feature_col: 'species_name_original'})
    position = annotated.columns.get_loc('species_name_original') + 1
    annotated.insert(position, 'species_name', annotated['species_name_original'].map(name_map))

    parsed = annotations.rename(columns={'original_name': 'species_name',
                                         'normalized_name': 'lipid_name'})
    annotated = annotated.merge(parsed, on='species_name', how='left', sort=False)

    return annotated, annotations, unparsed


def annot_lip(data, parser=None):
    """
    Normalize lipid feature names with the Goslin parser.

    Parameters
    ----------
    data : dict
        Output from prep_lip() or qc_lip().
    parser : LipidNameParser, optional
        Parser to use. Default: GoslinNameParser().

    Returns
    -------
    dict
        Updated data dictionary with 'annotated', 'annotations' and
        'unparsed_names'.

    Example
    -------
    >>> data = annot_lip(data)
    >>> data['unparsed_names']
    """

    _banner("LIPID NAME NORMALIZATION")

    config = data['config']['annotation']
    output_dirs = data['output_dirs']
    parser = parser if parser is not None else GoslinNameParser()

    print(f"\nGrammar: {config['grammar']}")
    print(f"Timeout: {config['timeout']} s")

    n_names = data['long']['feature'].nunique()
    print(f"\n[1/2] Parsing {n_names} feature names...")

    annotated, annotations, unparsed = normalize_names(
        data['long'],
        parser,
        grammar=config['grammar'],
        water_loss_token=config['water_loss_token'],
        timeout=config['timeout'],
    )

    print(f"  > Parsed {len(annotations)} names")
    if unparsed:
        print(f"  Warning: {len(unparsed)} names could not be parsed:")
        for name in unparsed:
            print(f"    - {name}")

    print(f"\n[2/2] Saving annotation tables...")

    annotations.to_csv(os.path.join(output_dirs['tables'], 'lipid_annotations.csv'), index=False)
    pd.DataFrame({'species_name': unparsed}).to_csv(
        os.path.join(output_dirs['tables'], 'unparsed_names.csv'), index=False
    )
    print(f"  > Saved: lipid_annotations.csv, unparsed_names.csv")

    _banner("NAME NORMALIZATION COMPLETE")
    print("\nNext step: cohort_lip() to join sample metadata")
    print("="*80 + "\n")

    data_updated = copy.copy(data)
    data_updated['annotated'] = annotated
    data_updated['annotations'] = annotations
    data_updated['unparsed_names'] = unparsed
    return data_updated

"""
Summary-statistics tables in GCTA ``.ma`` layout and allele matching

The ``.ma`` table is whitespace delimited with the header
``SNP A1 A2 freq b se p N`` where ``b`` is the effect of one copy of A1.
"""

import warnings
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from ..utils.data_types import AssociationResults, GenotypeMap

SUMSTATS_COLUMNS = ['SNP', 'A1', 'A2', 'freq', 'b', 'se', 'p', 'N']

_COMPLEMENT = {'A': 'T', 'T': 'A', 'C': 'G', 'G': 'C'}


def results_to_sumstats(results: AssociationResults,
                        geno_map: GenotypeMap,
                        allele_freq: Optional[np.ndarray] = None,
                        n: Optional[Union[float, np.ndarray]] = None) -> pd.DataFrame:
    """Build a ``.ma``-style table from association results and the marker map.

    Args:
        results: Per-marker effects, standard errors and p-values.
        geno_map: Map aligned with the results; ALT is reported as A1.
        allele_freq: Frequency of A1 per marker (NaN when omitted).
        n: Sample size, scalar or per marker. Defaults to the effective
            sample size recorded on the results.
    """
    if geno_map.n_markers != results.n_markers:
        raise ValueError("Map and results have different numbers of markers")
    map_df = geno_map.to_dataframe()
    if 'ALT' not in map_df.columns or 'REF' not in map_df.columns:
        raise ValueError("Map must carry ALT and REF alleles to write summary statistics")

    if n is None:
        n_values = results.n_eff_array() if results.n_eff is not None else np.full(results.n_markers, np.nan)
    else:
        n_values = np.broadcast_to(np.asarray(n, dtype=np.float64), (results.n_markers,))
    freq = np.full(results.n_markers, np.nan) if allele_freq is None else np.asarray(allele_freq, dtype=np.float64)

    return pd.DataFrame({
        'SNP': map_df['SNP'].astype(str).values,
        'A1': map_df['ALT'].astype(str).values,
        'A2': map_df['REF'].astype(str).values,
        'freq': freq,
        'b': results.effects,
        'se': results.se,
        'p': results.pvalues,
        'N': n_values,
    }, columns=SUMSTATS_COLUMNS)


def write_ma(sumstats: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write a summary-statistics table to a whitespace-delimited ``.ma`` file."""
    missing = [col for col in SUMSTATS_COLUMNS if col not in sumstats.columns]
    if missing:
        raise ValueError(f"Summary statistics missing columns: {missing}")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    out = sumstats[SUMSTATS_COLUMNS].copy()
    out['N'] = out['N'].round().astype('Int64')
    out.to_csv(path, sep=' ', index=False, float_format='%.6g', na_rep='NA')
    return path


def read_ma(path: Union[str, Path]) -> pd.DataFrame:
    """Read a ``.ma`` summary-statistics file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required columns are absent
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Summary statistics file not found: {path}")
    df = pd.read_csv(path, sep=r'\s+', na_values=['NA', 'nan'], dtype={'SNP': str, 'A1': str, 'A2': str})
    missing = [col for col in SUMSTATS_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Summary statistics missing columns: {missing}")
    for col in ('freq', 'b', 'se', 'p', 'N'):
        df[col] = pd.to_numeric(df[col], errors='coerce')
    return df


def _is_ambiguous(a1: pd.Series, a2: pd.Series) -> pd.Series:
    return a1.map(_COMPLEMENT) == a2


def match_sumstats(sumstats: pd.DataFrame,
                   geno_map: GenotypeMap,
                   join_by_pos: bool = False,
                   strand_flip: bool = True,
                   remove_ambiguous: bool = True,
                   verbose: bool = True) -> pd.DataFrame:
    """Align summary statistics to the genotype markers.

    Rows are joined on SNP id (or on CHROM and POS with ``join_by_pos``).
    When A1/A2 are swapped relative to the genotype ALT/REF, the effect sign
    is reversed and ``freq`` becomes ``1 - freq``. With ``strand_flip``,
    complementary alleles are also accepted. Ambiguous A/T and C/G SNPs are
    removed when ``remove_ambiguous`` is set.

    Returns:
        The matched table with ALT/REF alleles of the genotype data and a
        ``_NUM_ID_`` column holding marker indices, ordered by marker.
    """
    map_df = geno_map.to_dataframe()
    if 'ALT' not in map_df.columns or 'REF' not in map_df.columns:
        raise ValueError("Map must carry ALT and REF alleles to match summary statistics")
    map_df = map_df.assign(_NUM_ID_=np.arange(len(map_df)))
    ss = sumstats.copy()
    ss['A1'] = ss['A1'].astype(str).str.upper()
    ss['A2'] = ss['A2'].astype(str).str.upper()

    if join_by_pos:
        for col in ('CHROM', 'POS'):
            if col not in ss.columns:
                raise ValueError(f"Summary statistics need column {col} to join by position")
        ss['CHROM'] = ss['CHROM'].astype(str)
        map_df['CHROM'] = map_df['CHROM'].astype(str)
        merged = ss.drop(columns=['SNP'], errors='ignore').merge(
            map_df[['SNP', 'CHROM', 'POS', 'REF', 'ALT', '_NUM_ID_']], on=['CHROM', 'POS'])
    else:
        merged = ss.merge(map_df[['SNP', 'REF', 'ALT', '_NUM_ID_']], on='SNP')

    n_input = len(ss)
    ref = merged['REF'].astype(str).str.upper()
    alt = merged['ALT'].astype(str).str.upper()
    a1, a2 = merged['A1'], merged['A2']

    same = (a1 == alt) & (a2 == ref)
    reverse = (a1 == ref) & (a2 == alt)
    if strand_flip:
        c1, c2 = a1.map(_COMPLEMENT), a2.map(_COMPLEMENT)
        same |= (c1 == alt) & (c2 == ref)
        reverse |= (c1 == ref) & (c2 == alt)

    keep = same | reverse
    if remove_ambiguous:
        keep &= ~_is_ambiguous(a1, a2)

    merged.loc[reverse & ~same, 'b'] = -merged.loc[reverse & ~same, 'b']
    if 'freq' in merged.columns:
        merged.loc[reverse & ~same, 'freq'] = 1.0 - merged.loc[reverse & ~same, 'freq']

    matched = merged.loc[keep].copy()
    matched['A1'] = matched['ALT']
    matched['A2'] = matched['REF']
    matched = matched.drop(columns=['ALT', 'REF']).sort_values('_NUM_ID_').reset_index(drop=True)

    n_dropped = n_input - len(matched)
    if n_dropped > 0:
        warnings.warn(f"{n_dropped} of {n_input} summary-statistic rows could not be matched to genotype markers")
    if verbose:
        print(f"   {len(matched)} variants matched ({int((reverse & ~same & keep).sum())} reversed)")
    return matched


def load_phenotype_file(filepath: Union[str, Path],
                        id_column: Optional[str] = None,
                        trait_column: Optional[str] = None) -> pd.DataFrame:
    """Read a phenotype table and return columns ``ID`` and ``Trait``.

    CSV, TSV and whitespace-separated files are accepted. Without explicit
    column names, the first column holds IDs and the second the trait.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Phenotype file not found: {filepath}")

    df = pd.read_csv(filepath, sep=None, engine='python')
    if df.shape[1] < 2:
        df = pd.read_csv(filepath, sep=r'\s+')
    if df.shape[1] < 2:
        raise ValueError(f"Phenotype file must have at least 2 columns, got {df.shape[1]}")

    id_col = id_column or df.columns[0]
    trait_col = trait_column or [c for c in df.columns if c != id_col][0]
    for col in (id_col, trait_col):
        if col not in df.columns:
            raise ValueError(f"Column '{col}' not found in phenotype file")

    result = pd.DataFrame({
        'ID': df[id_col].astype(str),
        'Trait': pd.to_numeric(df[trait_col], errors='coerce'),
    })
    return result

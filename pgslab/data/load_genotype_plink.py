#!/usr/bin/env python
"""
PLINK .bed/.bim/.fam reader and writer: builds (geno_matrix, individual_ids, geno_map).

Dependencies:
    - bed-reader (pip install bed-reader)

Conventions:
    - Genotypes coded 0/1/2 for copies of A1 (treated as ALT); missing as -9 (int8)
    - .bim columns used to build map with columns ['SNP','CHROM','POS','CM','REF','ALT']
      where REF = A2 and ALT = A1 from BIM (PLINK convention)
    - .fam provides sample IDs (IID) and, optionally, a phenotype column

QC options: monomorphic, missingness, MAF filters.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import os

import numpy as np
import pandas as pd

from ..utils.data_types import GenotypeMap, GenotypeMatrix, MISSING

FAM_COLUMNS = ['FID', 'IID', 'PAT', 'MAT', 'SEX', 'PHENO']
BIM_COLUMNS = ['CHROM', 'SNP', 'CM', 'POS', 'A1', 'A2']


def _resolve_plink_paths(prefix_or_bed: str | Path, bim: str | Path | None, fam: str | Path | None) -> Tuple[Path, Path, Path]:
    p = Path(prefix_or_bed)
    if p.suffix.lower() == '.bed':
        bed = p
        pref = p.with_suffix('')
    else:
        pref = p
        bed = Path(f"{pref}.bed")
    bim_path = Path(bim) if bim else Path(f"{pref}.bim")
    fam_path = Path(fam) if fam else Path(f"{pref}.fam")
    for fp, ext in ((bed, '.bed'), (bim_path, '.bim'), (fam_path, '.fam')):
        if not fp.exists():
            raise FileNotFoundError(f"Missing PLINK file: {fp} ({ext})")
    return bed, bim_path, fam_path


def read_fam(fam_path: str | Path) -> pd.DataFrame:
    """Read a .fam file into a DataFrame with FID, IID, PAT, MAT, SEX, PHENO.

    Short lines degrade gracefully: a single token is used as both FID and
    IID, and absent trailing fields become missing.
    """
    rows = []
    with Path(fam_path).open('r') as fh:
        for line in fh:
            parts = line.split()
            if not parts:
                continue
            if len(parts) == 1:
                parts = [parts[0], parts[0]]
            parts = parts[:6] + [None] * (6 - min(len(parts), 6))
            rows.append(parts)
    if not rows:
        raise ValueError('FAM file contained no individuals')

    fam = pd.DataFrame(rows, columns=FAM_COLUMNS)
    fam['SEX'] = pd.to_numeric(fam['SEX'], errors='coerce')
    pheno = pd.to_numeric(fam['PHENO'], errors='coerce')
    # PLINK uses -9 as missing, and also 0 in case/control (1/2) files
    pheno = pheno.where(pheno != -9)
    coded = set(pheno.dropna().unique())
    if 0 in coded and coded - {0.0} == {1.0, 2.0}:
        pheno = pheno.where(pheno != 0)
    fam['PHENO'] = pheno
    return fam


def _read_fam_ids(fam_path: Path) -> List[str]:
    return read_fam(fam_path)['IID'].astype(str).tolist()


def _read_bim_map(bim_path: Path) -> pd.DataFrame:
    rows = []
    with bim_path.open('r') as fh:
        for line in fh:
            parts = line.split()
            if len(parts) < 6:
                continue
            chrom, snp, cm, pos, a1, a2 = parts[:6]
            rows.append({
                'SNP': snp,
                'CHROM': str(chrom),
                'POS': int(float(pos)),
                'CM': float(cm),
                'REF': a2,
                'ALT': a1,
            })
    return pd.DataFrame(rows, columns=['SNP', 'CHROM', 'POS', 'CM', 'REF', 'ALT'])


def impute_major_allele_inplace(geno: np.ndarray, missing_value: int = MISSING) -> None:
    """Replace missing calls with the per-marker most frequent dosage."""
    missing = geno == missing_value
    if not missing.any():
        return
    counts = np.stack([np.sum(geno == val, axis=0) for val in (0, 1, 2)], axis=0)
    major = np.argmax(counts, axis=0).astype(geno.dtype)
    geno[missing] = np.broadcast_to(major, geno.shape)[missing]


def _qc_mask(Xi: np.ndarray, drop_monomorphic: bool, max_missing: float, min_maf: float) -> np.ndarray:
    n_ind, n_mark = Xi.shape
    keep_mask = np.ones(n_mark, dtype=bool)
    valid = Xi != MISSING
    counts = valid.sum(axis=0)

    if max_missing < 1.0:
        call_rate = counts / float(n_ind)
        keep_mask &= (1.0 - call_rate) <= max_missing

    if min_maf > 0.0 or drop_monomorphic:
        sums = np.where(valid, Xi, 0).sum(axis=0)
        with np.errstate(divide='ignore', invalid='ignore'):
            mean_dos = np.where(counts > 0, sums / np.maximum(counts, 1), 0.0)
        maf = np.minimum(mean_dos / 2.0, 1.0 - (mean_dos / 2.0))
        if min_maf > 0.0:
            keep_mask &= maf >= min_maf
        if drop_monomorphic:
            all0 = ((Xi == 0) | ~valid).all(axis=0)
            all1 = ((Xi == 1) | ~valid).all(axis=0)
            all2 = ((Xi == 2) | ~valid).all(axis=0)
            keep_mask &= ~(all0 | all1 | all2)
    return keep_mask


def load_genotype_plink(
    prefix_or_bed: str | Path,
    bim: str | Path | None = None,
    fam: str | Path | None = None,
    drop_monomorphic: bool = False,
    max_missing: float = 1.0,
    min_maf: float = 0.0,
    impute: bool = True,
    force_recache: bool = False,
    verbose: bool = True,
) -> Tuple[GenotypeMatrix, List[str], GenotypeMap]:
    """
    Load PLINK 1 .bed genotype data.

    Parameters
    - prefix_or_bed: path to PLINK prefix or .bed file
    - bim, fam: optional explicit paths; by default inferred from prefix
    - drop_monomorphic: drop variants whose non-missing calls are all identical
    - max_missing: drop variants with missing rate > threshold (0..1]
    - min_maf: drop variants with minor allele frequency < threshold
    - impute: replace missing calls with the per-marker major allele
    - force_recache: ignore any existing cache and rebuild it
    """
    bed_path, bim_path, fam_path = _resolve_plink_paths(prefix_or_bed, bim, fam)

    cache_base = str(bed_path)
    cache_geno = cache_base + '.pgslab.geno.npy'
    cache_ind = cache_base + '.pgslab.ind.txt'
    cache_map = cache_base + '.pgslab.map.csv'
    cache_key = f"qc:{drop_monomorphic}:{max_missing}:{min_maf}:{impute}"

    if not force_recache and all(os.path.exists(p) for p in (cache_geno, cache_ind, cache_map)):
        newest_src = max(os.path.getmtime(p) for p in (bed_path, bim_path, fam_path))
        if all(os.path.getmtime(p) > newest_src for p in (cache_geno, cache_ind, cache_map)):
            with open(cache_ind, 'r') as f:
                lines = [line.rstrip('\n') for line in f]
            if lines and lines[0] == cache_key:
                if verbose:
                    print(f"   [Cache] Loading binary cache for {bed_path}...")
                geno_matrix = np.load(cache_geno, mmap_mode='r')
                geno_map = pd.read_csv(cache_map, dtype={'CHROM': str, 'SNP': str})
                return (
                    GenotypeMatrix(geno_matrix, is_imputed=impute),
                    lines[1:],
                    GenotypeMap(geno_map, metadata={'source': str(bed_path)}),
                )

    individual_ids = _read_fam_ids(fam_path)
    geno_map = _read_bim_map(bim_path)

    try:
        from bed_reader import open_bed  # type: ignore
    except ImportError as e:
        raise ImportError("bed-reader is required for PLINK .bed loading. pip install bed-reader") from e

    with open_bed(str(bed_path), count_A1=True) as b:
        X = b.read(dtype='float32')

    missing_mask = np.isnan(X)
    Xi = np.rint(np.where(missing_mask, 0, X)).astype(np.int8)
    Xi[missing_mask] = MISSING
    bad = (Xi != 0) & (Xi != 1) & (Xi != 2) & (Xi != MISSING)
    if np.any(bad):
        Xi[bad] = MISSING

    n_ind, n_mark = Xi.shape
    if len(individual_ids) != n_ind:
        raise ValueError(f"Sample count mismatch: FAM {len(individual_ids)} vs BED {n_ind}")
    if len(geno_map) != n_mark:
        raise ValueError(f"Marker count mismatch: BIM {len(geno_map)} vs BED {n_mark}")

    keep_mask = _qc_mask(Xi, drop_monomorphic, max_missing, min_maf)
    if not keep_mask.all():
        Xi = np.ascontiguousarray(Xi[:, keep_mask])
        geno_map = geno_map.loc[keep_mask].reset_index(drop=True)
        if verbose:
            print(f"   QC removed {int((~keep_mask).sum())} of {n_mark} markers")

    if impute:
        impute_major_allele_inplace(Xi, missing_value=MISSING)

    try:
        np.save(cache_geno, Xi)
        with open(cache_ind, 'w') as f:
            f.write(f"{cache_key}\n")
            for ind in individual_ids:
                f.write(f"{ind}\n")
        geno_map.to_csv(cache_map, index=False)
        if verbose:
            print(f"   [Cache] Saved binary cache to {cache_base}.pgslab.*")
    except OSError as e:
        print(f"   [Cache] Warning: Failed to save cache: {e}")

    return (
        GenotypeMatrix(Xi, is_imputed=impute),
        individual_ids,
        GenotypeMap(geno_map, metadata={'source': str(bed_path)}),
    )


def write_plink(
    prefix: str | Path,
    geno: GenotypeMatrix | np.ndarray,
    individual_ids: Sequence[str],
    geno_map: GenotypeMap,
    phenotype: Optional[np.ndarray] = None,
    family_ids: Optional[Sequence[str]] = None,
) -> Tuple[Path, Path, Path]:
    """Write a PLINK 1 .bed/.bim/.fam trio.

    Dosages count copies of ALT, which is written as A1. Missing calls (-9)
    are written as missing. A phenotype vector, when given, fills the sixth
    .fam column (NaN becomes -9).
    """
    try:
        from bed_reader import to_bed  # type: ignore
    except ImportError as e:
        raise ImportError("bed-reader is required for PLINK .bed writing. pip install bed-reader") from e

    values = geno[:, :] if isinstance(geno, GenotypeMatrix) else np.asarray(geno)
    values = values.astype(np.float32)
    values[values == MISSING] = np.nan
    n_ind, n_mark = values.shape
    if len(individual_ids) != n_ind:
        raise ValueError("individual_ids must match the number of genotype rows")
    if geno_map.n_markers != n_mark:
        raise ValueError("geno_map must match the number of genotype columns")

    map_df = geno_map.to_dataframe()
    properties = {
        'fid': list(family_ids) if family_ids is not None else list(individual_ids),
        'iid': list(individual_ids),
        'sid': map_df['SNP'].astype(str).tolist(),
        'chromosome': map_df['CHROM'].astype(str).tolist(),
        'bp_position': map_df['POS'].astype(np.int32).to_numpy(),
    }
    if 'CM' in map_df.columns:
        properties['cm_position'] = map_df['CM'].astype(np.float32).to_numpy()
    if 'ALT' in map_df.columns and 'REF' in map_df.columns:
        properties['allele_1'] = map_df['ALT'].astype(str).tolist()
        properties['allele_2'] = map_df['REF'].astype(str).tolist()
    if phenotype is not None:
        pheno = np.asarray(phenotype, dtype=np.float32)
        if len(pheno) != n_ind:
            raise ValueError("phenotype must match the number of genotype rows")
        properties['pheno'] = np.where(np.isnan(pheno), -9, pheno)

    bed_path = Path(f"{prefix}.bed")
    bed_path.parent.mkdir(parents=True, exist_ok=True)
    to_bed(str(bed_path), values, properties=properties, count_A1=True)
    return bed_path, Path(f"{prefix}.bim"), Path(f"{prefix}.fam")

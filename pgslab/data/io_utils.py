"""
File I/O utilities for pgslab
"""

import numpy as np
import pandas as pd
from pathlib import Path
from scipy import sparse
from typing import Union
import h5py

from ..utils.data_types import CorrelationMatrix


def save_correlation_matrix(corr: CorrelationMatrix, path: Union[str, Path],
                            compression: str = 'gzip') -> Path:
    """Store a sparse LD matrix in HDF5 as its CSC arrays."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mat = corr.to_sparse()
    with h5py.File(path, 'w') as f:
        grp = f.create_group('corr')
        grp.create_dataset('data', data=mat.data, compression=compression)
        grp.create_dataset('indices', data=mat.indices, compression=compression)
        grp.create_dataset('indptr', data=mat.indptr, compression=compression)
        grp.attrs['shape'] = np.asarray(mat.shape, dtype=np.int64)
        grp.attrs['format'] = 'csc'
    return path


def load_correlation_matrix(path: Union[str, Path]) -> CorrelationMatrix:
    """Load an LD matrix written by :func:`save_correlation_matrix`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Correlation matrix file not found: {path}")
    with h5py.File(path, 'r') as f:
        if 'corr' not in f:
            raise ValueError(f"{path} does not contain a correlation matrix")
        grp = f['corr']
        shape = tuple(int(x) for x in grp.attrs['shape'])
        mat = sparse.csc_matrix(
            (grp['data'][:], grp['indices'][:], grp['indptr'][:]),
            shape=shape,
        )
    return CorrelationMatrix(mat)


def save_association_results(results_dict: dict, output_prefix: str):
    """Save GWAS association results to files

    Args:
        results_dict: Dictionary with keys like 'logistic', 'glm'
        output_prefix: Output file prefix
    """
    written = []
    for method, results in results_dict.items():
        if results is None:
            continue
        output_file = f"{output_prefix}.{method}.assoc.txt"
        if hasattr(results, 'to_dataframe'):
            df = results.to_dataframe()
        elif isinstance(results, np.ndarray):
            df = pd.DataFrame(results, columns=['Effect', 'SE', 'P-value'])
        else:
            df = results
        df.to_csv(output_file, sep='\t', index=False)
        written.append(output_file)
    return written


def load_association_results(file_path: Union[str, Path]) -> pd.DataFrame:
    """Load GWAS association results from file"""
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Results file not found: {file_path}")
    return pd.read_csv(file_path, sep='\t')


def save_scores(scores: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write per-individual polygenic scores (one column per model) as TSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    scores.to_csv(path, sep='\t', index=False)
    return path

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from pgslab.data.io_utils import (
    load_association_results,
    load_correlation_matrix,
    save_association_results,
    save_correlation_matrix,
    save_scores,
)
from pgslab.utils.data_types import AssociationResults, CorrelationMatrix


def test_correlation_matrix_hdf5_round_trip(tmp_path) -> None:
    dense = np.array([[1.0, 0.3, 0.0], [0.3, 1.0, -0.5], [0.0, -0.5, 1.0]])
    corr = CorrelationMatrix(sparse.csc_matrix(dense))

    path = save_correlation_matrix(corr, tmp_path / "ld" / "corr.h5")
    loaded = load_correlation_matrix(path)

    assert loaded.shape == (3, 3)
    assert loaded.nnz == corr.nnz
    np.testing.assert_allclose(loaded.to_dense(), dense)


def test_load_correlation_matrix_errors(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_correlation_matrix(tmp_path / "absent.h5")

    import h5py

    other = tmp_path / "other.h5"
    with h5py.File(other, "w") as f:
        f.create_dataset("x", data=np.zeros(3))
    with pytest.raises(ValueError):
        load_correlation_matrix(other)


def test_association_results_round_trip(tmp_path) -> None:
    results = AssociationResults(np.array([0.1, -0.1]), np.array([0.01, 0.02]), np.array([1e-5, 0.3]))

    written = save_association_results({"linear": results, "skipped": None}, str(tmp_path / "gwas"))

    assert written == [str(tmp_path / "gwas") + ".linear.assoc.txt"]
    df = load_association_results(written[0])
    np.testing.assert_allclose(df["Effect"], [0.1, -0.1])
    np.testing.assert_allclose(df["P-value"], [1e-5, 0.3])

    with pytest.raises(FileNotFoundError):
        load_association_results(tmp_path / "nothing.txt")


def test_save_scores_writes_tsv(tmp_path) -> None:
    scores = pd.DataFrame({"ID": ["a", "b"], "All SNPs": [0.1, -0.2]})

    path = save_scores(scores, tmp_path / "scores" / "test_scores.tsv")

    back = pd.read_csv(path, sep="\t")
    assert list(back.columns) == ["ID", "All SNPs"]
    np.testing.assert_allclose(back["All SNPs"], [0.1, -0.2])

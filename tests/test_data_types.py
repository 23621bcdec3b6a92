import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from pgslab.utils.data_types import (
    AssociationResults,
    CorrelationMatrix,
    GenotypeMap,
    GenotypeMatrix,
    PGSModel,
)


def _make_map(n: int = 4, with_alleles: bool = True) -> GenotypeMap:
    df = pd.DataFrame({
        "SNP": [f"rs{i}" for i in range(n)],
        "CHROM": ["1"] * n,
        "POS": np.arange(1, n + 1) * 100,
    })
    if with_alleles:
        df["ALT"] = ["A"] * n
        df["REF"] = ["G"] * n
    return GenotypeMap(df)


def test_genotype_map_requires_columns_and_subsets() -> None:
    with pytest.raises(ValueError):
        GenotypeMap(pd.DataFrame({"SNP": ["a"], "CHROM": ["1"]}))

    geno_map = _make_map(4)
    sub = geno_map.subset([1, 3])
    assert sub.n_markers == 2
    assert list(sub.snp_ids) == ["rs1", "rs3"]
    assert geno_map.genetic_positions is None


def test_genotype_matrix_imputes_major_allele() -> None:
    data = np.array(
        [
            [0, 2, -9],
            [1, 2, 1],
            [-9, -9, 1],
            [1, 0, 0],
        ],
        dtype=np.int8,
    )
    geno = GenotypeMatrix(data)

    np.testing.assert_array_equal(geno.major_alleles, [1, 2, 1])
    batch = geno.get_batch_imputed(0, 3)
    np.testing.assert_array_equal(batch[:, 0], [0, 1, 1, 1])
    np.testing.assert_array_equal(batch[:, 2], [1, 1, 1, 0])

    cols = geno.get_columns_imputed([2, 0], ind_row=[0, 2])
    np.testing.assert_array_equal(cols, [[1, 0], [1, 1]])

    filled = geno.get_columns_imputed([1], fill_value=0.0)
    np.testing.assert_array_equal(filled[:, 0], [2, 2, 0, 0])


def test_allele_frequencies_ignore_missing_and_respect_rows() -> None:
    data = np.array([[0, 2], [2, -9], [1, 2]], dtype=np.int8)
    geno = GenotypeMatrix(data)

    np.testing.assert_allclose(geno.calculate_allele_frequencies(), [0.5, 1.0])
    np.testing.assert_allclose(geno.calculate_allele_frequencies(ind_row=[0, 2]), [0.25, 1.0])
    np.testing.assert_allclose(geno.calculate_maf(), [0.5, 0.0])


def test_standardized_columns_zero_for_monomorphic() -> None:
    data = np.array([[0, 1], [1, 1], [2, 1], [1, 1]], dtype=np.int8)
    Z = GenotypeMatrix(data).standardized_columns([0, 1])

    assert Z[:, 0].mean() == pytest.approx(0.0)
    assert Z[:, 0].std() == pytest.approx(1.0)
    np.testing.assert_array_equal(Z[:, 1], 0.0)


def test_subsets_keep_values() -> None:
    data = np.arange(12, dtype=np.int8).reshape(4, 3) % 3
    geno = GenotypeMatrix(data)

    np.testing.assert_array_equal(geno.subset_individuals([1, 3])[:, :], data[[1, 3]])
    np.testing.assert_array_equal(geno.subset_markers([2])[:, :], data[:, [2]])


def test_association_results_validation_and_dataframe() -> None:
    with pytest.raises(ValueError):
        AssociationResults(np.zeros(2), np.zeros(3), np.zeros(2))

    res = AssociationResults(
        np.array([0.1, -0.2]), np.array([0.05, 0.1]), np.array([0.04, 0.05]),
        snp_map=_make_map(2), zscores=np.array([2.0, -2.0]), n_eff=100.0,
    )
    df = res.to_dataframe()
    assert list(df.columns) == ["SNP", "Chr", "Pos", "Effect", "SE", "P-value", "Z", "N"]
    np.testing.assert_array_equal(df["N"], [100.0, 100.0])
    assert res.to_numpy().shape == (2, 3)


def test_log10_pvalues_use_z_without_underflow() -> None:
    res = AssociationResults(np.array([1.0]), np.array([0.025]), np.array([0.0]),
                             zscores=np.array([40.0]))
    lp = res.log10_pvalues
    assert np.isfinite(lp[0])
    assert lp[0] > 300

    no_z = AssociationResults(np.array([0.0, 1.0]), np.array([np.nan, 0.5]), np.array([1.0, 0.05]))
    lp = no_z.log10_pvalues
    assert lp[0] == 0.0
    assert lp[1] > 1


def test_n_eff_array_requires_value() -> None:
    res = AssociationResults(np.zeros(3), np.ones(3), np.ones(3))
    with pytest.raises(ValueError):
        res.n_eff_array()

    res.n_eff = np.array([10.0, 20.0, 30.0])
    np.testing.assert_array_equal(res.n_eff_array(), [10.0, 20.0, 30.0])


def test_correlation_matrix_ld_scores_and_subset() -> None:
    dense = np.array([[1.0, 0.5, 0.0], [0.5, 1.0, 0.2], [0.0, 0.2, 1.0]])
    corr = CorrelationMatrix(sparse.csr_matrix(dense))

    assert corr.to_sparse().format == "csc"
    assert corr.is_symmetric()
    np.testing.assert_allclose(corr.ld_scores(), [1.25, 1.29, 1.04])
    np.testing.assert_allclose(corr.subset([1, 2]).to_dense(), dense[np.ix_([1, 2], [1, 2])])

    with pytest.raises(ValueError):
        CorrelationMatrix(np.zeros((2, 3)))


def test_pgs_model_dataframe_drops_zero_weights() -> None:
    model = PGSModel("toy", np.array([0.0, 0.3, 0.0, -0.1]), {"p": 0.1})

    assert model.n_nonzero == 2
    df = model.to_dataframe(_make_map(4))
    assert list(df["SNP"]) == ["rs1", "rs3"]
    assert list(df.columns) == ["SNP", "A1", "Weight"]
    assert len(model.to_dataframe(drop_zero=False)) == 4

    with pytest.raises(ValueError):
        model.to_dataframe(_make_map(3))
    with pytest.raises(ValueError):
        PGSModel("bad", np.zeros((2, 2)))

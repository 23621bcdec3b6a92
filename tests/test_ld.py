import numpy as np
import pandas as pd
import pytest
from scipy import stats

from pgslab.matrix.ld import PGS_LD, correlation_threshold, ld_scores, ld_summary, window_ends
from pgslab.utils.data_types import GenotypeMap, GenotypeMatrix


def _ld_genotypes(n: int = 300, m: int = 20, block: int = 5, rho: float = 0.9, seed: int = 0) -> np.ndarray:
    """Diploid genotypes with strong LD inside consecutive blocks of SNPs."""
    rng = np.random.default_rng(seed)
    geno = np.zeros((n, m), dtype=np.int8)
    for _ in range(2):
        for start in range(0, m, block):
            width = min(block, m - start)
            shared = rng.standard_normal((n, 1))
            latent = rho * shared + np.sqrt(1 - rho ** 2) * rng.standard_normal((n, width))
            thresholds = rng.uniform(-0.5, 0.8, width)
            geno[:, start:start + width] += (latent > thresholds).astype(np.int8)
    return geno


def _two_chrom_map(m: int = 20) -> GenotypeMap:
    half = m // 2
    return GenotypeMap(pd.DataFrame({
        "SNP": [f"rs{i}" for i in range(m)],
        "CHROM": ["1"] * half + ["2"] * (m - half),
        "POS": np.concatenate([np.arange(half), np.arange(m - half)]) * 1000 + 1000,
        "CM": np.concatenate([np.arange(half), np.arange(m - half)]) * 0.01,
    }))


def test_ld_matches_corrcoef_within_window() -> None:
    geno = _ld_genotypes()
    geno_map = _two_chrom_map()

    corr = PGS_LD(geno, geno_map, size=3, verbose=False)
    dense = corr.to_dense()
    full = np.corrcoef(geno.T.astype(float))

    chrom = geno_map.chromosomes.to_numpy()
    pos = geno_map.positions.to_numpy()
    same_chrom = chrom[:, None] == chrom[None, :]
    in_window = np.abs(pos[:, None] - pos[None, :]) <= 3000
    expected = np.where(same_chrom & in_window, full, 0.0)

    np.testing.assert_allclose(dense, expected, atol=1e-10)
    np.testing.assert_allclose(np.diag(dense), 1.0)
    assert corr.is_symmetric()
    assert not np.any(dense[:10, 10:])


def test_ld_thresholds_and_significance() -> None:
    geno = _ld_genotypes(seed=1)
    corr = PGS_LD(geno, _two_chrom_map(), size=20, thr_r2=0.2, verbose=False)
    dense = corr.to_dense()
    off = dense[~np.eye(20, dtype=bool)]
    assert np.all((off == 0) | (off ** 2 >= 0.2))

    n = 102
    df = n - 2
    t_q = stats.t.isf(0.025, df)
    assert correlation_threshold(n, alpha=0.05) == pytest.approx(t_q / np.sqrt(df + t_q ** 2))
    assert correlation_threshold(n, thr_r2=0.25, alpha=1.0) == pytest.approx(0.5)
    with pytest.raises(ValueError):
        correlation_threshold(n, thr_r2=1.5)


def test_ld_without_map_counts_snps_and_respects_subsets() -> None:
    geno = _ld_genotypes(seed=2)
    rows = np.arange(150)

    corr = PGS_LD(GenotypeMatrix(geno), None, size=2, ind_row=rows, verbose=False)
    dense = corr.to_dense()
    full = np.corrcoef(geno[rows].T.astype(float))
    band = np.abs(np.subtract.outer(np.arange(20), np.arange(20))) <= 2
    np.testing.assert_allclose(dense, np.where(band, full, 0.0), atol=1e-10)

    cols = np.array([7, 2, 5])
    sub = PGS_LD(geno, _two_chrom_map(), size=20, ind_col=cols, verbose=False).to_dense()
    np.testing.assert_allclose(sub, np.corrcoef(geno[:, cols].T.astype(float)), atol=1e-10)


def test_ld_genetic_map_window_and_monomorphic() -> None:
    geno = _ld_genotypes(seed=3)
    geno[:, 4] = 1

    corr = PGS_LD(geno, _two_chrom_map(), size=10, use_genetic_map=True, verbose=False)
    dense = corr.to_dense()
    assert dense[4, 4] == 1.0
    assert np.count_nonzero(dense[4]) == 1
    # 0.01 cM between neighbours, window of 10 / 1000 cM
    assert dense[0, 2] == 0.0

    no_diag = PGS_LD(geno, _two_chrom_map(), size=10, use_genetic_map=True, fill_diag=False,
                     verbose=False)
    assert no_diag.to_dense()[4, 4] == 0.0

    no_cm = GenotypeMap(_two_chrom_map().data.drop(columns=["CM"]))
    with pytest.raises(ValueError):
        PGS_LD(geno, no_cm, use_genetic_map=True, verbose=False)
    with pytest.raises(ValueError):
        PGS_LD(geno, _two_chrom_map(), size=0, verbose=False)


def test_ld_scores_and_summary() -> None:
    geno = _ld_genotypes(seed=4)
    corr = PGS_LD(geno, _two_chrom_map(), size=50, verbose=False)
    dense = corr.to_dense()

    np.testing.assert_allclose(ld_scores(corr), (dense ** 2).sum(axis=0))
    summary = ld_summary(corr)
    np.testing.assert_array_equal(summary["n_partners"], (dense != 0).sum(axis=0) - 1)


def test_window_ends() -> None:
    np.testing.assert_array_equal(window_ends(np.array([0.0, 1.0, 2.5, 10.0]), 1.5), [2, 3, 3, 4])

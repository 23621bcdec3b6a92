"""Integration tests for PGSTutorialPipeline end-to-end workflows."""

import matplotlib

matplotlib.use("Agg")

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from pgslab.pipelines.tutorial import MODEL_CHOICES, PGSTutorialPipeline
from pgslab.utils.data_types import GenotypeMap


@pytest.fixture
def synthetic_data():
    """Genotypes with LD blocks on two chromosomes, and a map with alleles."""
    rng = np.random.default_rng(42)
    n, m, block = 400, 60, 5
    geno = np.zeros((n, m), dtype=np.int8)
    for _ in range(2):
        for start in range(0, m, block):
            shared = rng.standard_normal((n, 1))
            latent = 0.9 * shared + np.sqrt(1 - 0.81) * rng.standard_normal((n, block))
            geno[:, start:start + block] += (latent > rng.uniform(-0.6, 0.6, block)).astype(np.int8)

    geno_map = GenotypeMap(pd.DataFrame({
        "SNP": [f"rs{i}" for i in range(m)],
        "CHROM": ["1"] * (m // 2) + ["2"] * (m // 2),
        "POS": (np.arange(m) % (m // 2)) * 20_000 + 10_000,
        "ALT": ["A"] * m,
        "REF": ["G"] * m,
    }))
    ids = [f"IND{i:03d}" for i in range(n)]
    return geno, ids, geno_map


def _small_model_options():
    return dict(
        grid_thr_r2=(0.2, 0.8),
        grid_base_size=(100,),
        ldpred_p_seq=[0.01, 0.1, 1.0],
        ldpred_h2_factors=(0.7, 1.0),
        burn_in=5,
        num_iter=10,
        auto_chains=3,
        auto_burn_in=10,
        auto_num_iter=10,
    )


def test_binary_trait_full_workflow(tmp_path: Path, synthetic_data) -> None:
    geno, ids, geno_map = synthetic_data
    pipeline = PGSTutorialPipeline(output_dir=tmp_path / "out", seed=1, verbose=False)

    pipeline.set_genotypes(geno, ids, geno_map)
    pipeline.simulate_phenotype(h2=0.7, n_causal=8, prevalence=0.3)
    assert pipeline.binary
    assert (tmp_path / "out" / "phenotype.tsv").exists()

    pipeline.split(n_test=100)
    assert len(pipeline.ind_train) == 300
    assert len(np.intersect1d(pipeline.ind_train, pipeline.ind_test)) == 0

    pipeline.run_gwas()
    assert pipeline.gwas.n_markers == 60
    assert (tmp_path / "out" / "gwas.ma").exists()
    assert (tmp_path / "out" / "gwas.logistic.assoc.txt").exists()
    assert len(pipeline.sumstats) == 60

    pipeline.compute_ld(size=500)
    assert pipeline.corr.n_markers == len(pipeline.ind_ok)
    assert pipeline.h2_est >= 0.01
    assert set(pipeline.ldsc) == {"intercept", "intercept_se", "h2", "h2_se"}

    pipeline.build_models(p_cutoffs=(1e-5, 0.05), **_small_model_options())
    expected = {"All SNPs", "P < 1e-05", "P < 0.05", "Clumping", "C+T (best)", "SCT",
                "LDpred2-inf", "LDpred2-grid (best)", "LDpred2-auto"}
    assert set(pipeline.models) == expected
    assert pipeline.ldpred_betas.shape == (len(pipeline.ind_ok), 12)
    assert len(pipeline.auto_chains) == 3
    assert 1 <= len(pipeline.auto_keep) <= 3
    for model in pipeline.models.values():
        assert model.n_markers == 60
    assert pipeline.models["LDpred2-auto"].params["n_chains_kept"] == len(pipeline.auto_keep)
    assert (tmp_path / "out" / "weights" / "ldpred2_grid_best.tsv").exists()

    comparison = pipeline.evaluate(nboot=20)
    assert comparison["Value"].is_monotonic_decreasing
    assert set(comparison["Model"]) == expected
    assert (comparison["Metric"] == "AUC").all()
    assert pipeline.test_scores.shape == (100, 2 + len(expected))
    assert comparison["Value"].iloc[0] > 0.6

    files = pipeline.report(dpi=50)
    out = tmp_path / "out"
    for name in ("gwas_GWAS_manhattan.png", "gwas_GWAS_qq.png", "model_comparison.png",
                 "best_score_distribution.png", "ct_grid.png", "ldpred2_grid.png",
                 "ldpred2_auto_chains.png", "effects_ldpred2_auto.png",
                 "model_comparison.tsv", "test_scores.tsv", "ld_matrix.h5"):
        assert (out / name).exists(), name
        assert str(out / name) in files


def test_quantitative_trait_from_file(tmp_path: Path, synthetic_data) -> None:
    geno, ids, geno_map = synthetic_data
    rng = np.random.default_rng(3)
    trait = geno[:, [2, 17, 41]].astype(float) @ np.array([0.8, -0.6, 0.7]) + rng.standard_normal(len(ids))
    pheno = pd.DataFrame({"Sample": ids, "Height": trait}).iloc[:350]
    pheno.loc[5, "Height"] = np.nan
    pheno_file = tmp_path / "pheno.csv"
    pheno.to_csv(pheno_file, index=False)

    pipeline = PGSTutorialPipeline(output_dir=tmp_path / "quant", seed=2, verbose=False)
    pipeline.set_genotypes(geno, ids, geno_map)
    pipeline.load_phenotype(pheno_file, id_column="Sample", trait_column="Height")

    assert not pipeline.binary
    assert pipeline.genotype_matrix.n_individuals == 349
    assert "IND005" not in pipeline.individual_ids
    np.testing.assert_allclose(pipeline.phenotype[:5], trait[:5])

    pipeline.split(test_fraction=0.25)
    pipeline.run_gwas()
    assert (tmp_path / "quant" / "gwas.linear.assoc.txt").exists()
    pipeline.compute_ld(size=200)
    pipeline.build_models(models=["all", "clumping", "ct", "ldpred2_inf"], **_small_model_options())
    assert set(pipeline.models) == {"All SNPs", "Clumping", "C+T (best)", "LDpred2-inf"}

    comparison = pipeline.evaluate()
    assert (comparison["Metric"] == "R2").all()
    assert comparison["Value"].iloc[0] > 0.2

    files = pipeline.report(outputs=["comparison", "scores", "effects"], dpi=50)
    assert str(tmp_path / "quant" / "model_comparison.png") in files
    assert not (tmp_path / "quant" / "gwas_GWAS_manhattan.png").exists()
    # Effects plot needs a simulated phenotype
    assert not any("effects_" in f for f in files)


def test_binary_fam_coding(tmp_path: Path, synthetic_data) -> None:
    geno, ids, geno_map = synthetic_data
    status = np.where(np.arange(len(ids)) % 3 == 0, 2, 1)
    pheno_file = tmp_path / "status.tsv"
    pd.DataFrame({"IID": ids, "Status": status}).to_csv(pheno_file, sep="\t", index=False)

    pipeline = PGSTutorialPipeline(output_dir=tmp_path / "fam", verbose=False)
    pipeline.set_genotypes(geno, ids, geno_map)
    pipeline.load_phenotype(pheno_file)

    assert pipeline.binary
    assert set(np.unique(pipeline.phenotype)) == {0.0, 1.0}
    assert pipeline.phenotype.sum() == np.sum(status == 2)

    with pytest.raises(ValueError):
        pipeline.load_phenotype(from_fam=True)


def test_steps_require_previous_steps(tmp_path: Path, synthetic_data) -> None:
    geno, ids, geno_map = synthetic_data
    pipeline = PGSTutorialPipeline(output_dir=tmp_path / "order", seed=0, verbose=False)

    with pytest.raises(ValueError):
        pipeline.simulate_phenotype()
    with pytest.raises(ValueError):
        pipeline.set_genotypes(geno, ids[:10], geno_map)

    pipeline.set_genotypes(geno, ids, geno_map)
    with pytest.raises(ValueError):
        pipeline.split()
    with pytest.raises(ValueError):
        pipeline.load_phenotype()

    pipeline.simulate_phenotype(h2=0.5, n_causal=5)
    with pytest.raises(ValueError):
        pipeline.run_gwas()
    pipeline.split()
    with pytest.raises(ValueError):
        pipeline.report()

    pipeline.run_gwas()
    with pytest.raises(ValueError):
        pipeline.build_models(models=["ldpred2_inf"])
    with pytest.raises(ValueError):
        pipeline.build_models(models=["lasso"])
    with pytest.raises(ValueError):
        pipeline.evaluate()
    with pytest.raises(ValueError):
        pipeline.report(outputs=["pdf"])

    pipeline.build_models(models=["all"])
    assert list(pipeline.models) == ["All SNPs"]
    assert set(MODEL_CHOICES) >= {"all", "ldpred2_auto"}


def _load_script():
    import importlib.util

    script = Path(__file__).resolve().parents[1] / "scripts" / "run_pgs_tutorial.py"
    spec = importlib.util.spec_from_file_location("run_pgs_tutorial", script)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_plink_input_with_fam_phenotype_via_script(tmp_path: Path, synthetic_data) -> None:
    from pgslab.data.load_genotype_plink import write_plink

    geno, ids, geno_map = synthetic_data
    status = np.where(geno[:, 3] + geno[:, 33] >= 2, 2.0, 1.0)
    write_plink(tmp_path / "toy", geno, ids, geno_map, phenotype=status)

    pipeline = PGSTutorialPipeline(output_dir=tmp_path / "direct", verbose=False)
    pipeline.load_genotypes(tmp_path / "toy")
    pipeline.load_phenotype(from_fam=True)
    assert pipeline.binary
    np.testing.assert_allclose(pipeline.phenotype, status - 1)

    out = tmp_path / "script_out"
    _load_script().main([
        "--bfile", str(tmp_path / "toy"),
        "--fam-phenotype",
        "--outputdir", str(out),
        "--models", "all", "clumping",
        "--outputs", "comparison",
        "--n-test", "100",
        "--nboot", "20",
        "--seed", "0",
        "--quiet",
    ])
    table = pd.read_csv(out / "model_comparison.tsv", sep="\t")
    assert set(table["Model"]) == {"All SNPs", "Clumping"}
    assert (out / "model_comparison.png").exists()
    assert not (out / "ld_matrix.h5").exists()


def test_fam_case_control_with_zero_missing(tmp_path: Path, synthetic_data) -> None:
    from pgslab.data.load_genotype_plink import write_plink

    geno, ids, geno_map = synthetic_data
    status = np.where(np.arange(len(ids)) % 4 == 0, 2.0, 1.0)
    status[[1, 7, 50, 99]] = 0.0
    write_plink(tmp_path / "cc", geno, ids, geno_map, phenotype=status)

    pipeline = PGSTutorialPipeline(output_dir=tmp_path / "cc_out", verbose=False)
    pipeline.load_genotypes(tmp_path / "cc")
    pipeline.load_phenotype(from_fam=True)

    assert pipeline.binary
    assert len(pipeline.phenotype) == len(ids) - 4
    assert pipeline.genotype_matrix.n_individuals == len(ids) - 4
    assert set(np.unique(pipeline.phenotype)) == {0.0, 1.0}
    assert "IND007" not in pipeline.individual_ids


def test_unlinked_snps_fall_back_to_default_h2(tmp_path: Path) -> None:
    rng = np.random.default_rng(5)
    n, m = 300, 40
    geno = rng.binomial(2, 0.4, size=(n, m)).astype(np.int8)
    geno_map = GenotypeMap(pd.DataFrame({
        "SNP": [f"rs{i}" for i in range(m)],
        "CHROM": ["1"] * m,
        "POS": np.arange(m) * 1_000 + 1_000,
    }))
    ids = [f"IND{i:03d}" for i in range(n)]

    pipeline = PGSTutorialPipeline(output_dir=tmp_path / "unlinked", seed=3, verbose=False)
    pipeline.set_genotypes(geno, ids, geno_map)
    pipeline.simulate_phenotype(h2=0.5, n_causal=5)
    pipeline.split(n_test=75)
    pipeline.run_gwas()

    with pytest.warns(UserWarning, match="LDSC could not be fitted"):
        pipeline.compute_ld(size=500, thr_r2=0.2)

    assert np.isnan(pipeline.ldsc["h2"])
    assert pipeline.h2_est == pytest.approx(0.01)
    assert (tmp_path / "unlinked" / "ld_matrix.h5").exists()

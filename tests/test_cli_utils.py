import pytest

from pgslab.cli import utils


def test_normalize_outputs_defaults_and_filters() -> None:
    assert utils.normalize_outputs([]) == list(utils.OUTPUT_CHOICES)
    assert utils.normalize_outputs([" manhattan ", "qq", "unknown"]) == ["manhattan", "qq"]
    assert utils.normalize_outputs(["QQ,comparison", "qq"]) == ["qq", "comparison"]
    # all invalid falls back to defaults
    assert utils.normalize_outputs(["bad"]) == list(utils.OUTPUT_CHOICES)


def test_normalize_models() -> None:
    assert utils.normalize_models(None) == list(utils.MODEL_CHOICES)
    assert utils.normalize_models(["sct", "LDpred2_auto", "sct"]) == ["sct", "ldpred2_auto"]
    assert utils.normalize_models(["lasso"]) == list(utils.MODEL_CHOICES)


def test_parse_args_defaults(tmp_path) -> None:
    args = utils.parse_args(["--bfile", str(tmp_path / "toy")])

    assert args.bfile.endswith("toy")
    assert args.phenotype is None
    assert args.fam_phenotype is False
    assert args.h2 == 0.4
    assert args.n_causal == 300
    assert args.prevalence is None
    assert args.outputdir == "./PGS_results"
    assert args.outputs == list(utils.OUTPUT_CHOICES)
    assert args.models == list(utils.MODEL_CHOICES)
    assert args.p_cutoffs == [5e-8, 1e-5, 1e-3, 0.05]
    assert args.test_fraction == 0.2
    assert args.n_test is None
    assert args.ld_size == 500
    assert args.genetic_map is False
    assert args.auto_chains == 8
    assert args.drop_monomorphic is True  # default
    assert args.quiet is False


def test_parse_args_respects_overrides(tmp_path) -> None:
    args = utils.parse_args(
        [
            "-b",
            str(tmp_path / "toy.bed"),
            "-p",
            str(tmp_path / "phe.tsv"),
            "--trait",
            "Disease",
            "-o",
            str(tmp_path / "out"),
            "--outputs",
            "comparison",
            "scores",
            "--models",
            "ct",
            "ldpred2_auto",
            "--p-cutoffs",
            "1e-4,0.01",
            "--n-test",
            "50",
            "--seed",
            "7",
            "--genetic-map",
            "--ld-size",
            "3",
            "--keep-monomorphic",
            "--quiet",
        ]
    )
    assert args.phenotype.endswith("phe.tsv")
    assert args.trait == "Disease"
    assert args.outputs == ["comparison", "scores"]
    assert args.models == ["ct", "ldpred2_auto"]
    assert args.p_cutoffs == [1e-4, 0.01]
    assert args.n_test == 50
    assert args.seed == 7
    assert args.genetic_map is True
    assert args.ld_size == 3.0
    assert args.drop_monomorphic is False
    assert args.quiet is True


def test_parse_args_errors(tmp_path) -> None:
    with pytest.raises(SystemExit):
        utils.parse_args([])
    with pytest.raises(SystemExit):
        utils.parse_args(["-b", "toy", "-p", "phe.tsv", "--fam-phenotype"])
    with pytest.raises(SystemExit):
        utils.parse_args(["-b", "toy", "--p-cutoffs", "a,b"])
    with pytest.raises(SystemExit):
        utils.parse_args(["-b", "toy", "--models", "lasso"])

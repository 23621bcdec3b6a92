import argparse
from typing import List, Optional, Sequence

from ..pipelines.tutorial import MODEL_CHOICES, OUTPUT_CHOICES


def _normalize_choices(values: Optional[Sequence[str]], choices: Sequence[str]) -> List[str]:
    if not values:
        return list(choices)
    valid = []
    for item in values:
        for part in str(item).split(','):
            part = part.strip().lower()
            if part in choices and part not in valid:
                valid.append(part)
    return valid if valid else list(choices)


def normalize_outputs(outputs: Optional[Sequence[str]]) -> List[str]:
    """Helper to normalize output choices"""
    return _normalize_choices(outputs, OUTPUT_CHOICES)


def normalize_models(models: Optional[Sequence[str]]) -> List[str]:
    """Helper to normalize model choices"""
    return _normalize_choices(models, MODEL_CHOICES)


def _float_list(text: str) -> List[float]:
    try:
        return [float(v) for v in text.split(',') if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma-separated numbers, got '{text}'")


def parse_args(argv: Optional[Sequence[str]] = None):
    """Parse command line arguments for the PGS tutorial pipeline"""
    parser = argparse.ArgumentParser(
        description="Polygenic score tutorial: GWAS, C+T, SCT and LDpred2 on PLINK data",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument("--bfile", "-b", required=True,
                        help="PLINK prefix (or .bed path) of the genotype data")

    # Phenotype
    parser.add_argument("--phenotype", "-p", default=None,
                        help="Phenotype file (CSV/TSV with ID and trait columns); "
                             "the phenotype is simulated when omitted")
    parser.add_argument("--phenotype-id-column", default=None,
                        help="Column name for sample IDs in phenotype file")
    parser.add_argument("--trait", default=None,
                        help="Trait column in phenotype file")
    parser.add_argument("--fam-phenotype", action='store_true',
                        help="Use the phenotype column of the .fam file")
    parser.add_argument("--h2", type=float, default=0.4,
                        help="Heritability of the simulated phenotype")
    parser.add_argument("--n-causal", type=int, default=300,
                        help="Number of causal variants of the simulated phenotype")
    parser.add_argument("--prevalence", type=float, default=None,
                        help="Prevalence of a simulated binary trait (quantitative when omitted)")
    parser.add_argument("--alpha", type=float, default=-1.0,
                        help="MAF-dependence of simulated effect sizes")

    # Output
    parser.add_argument("--outputdir", "-o", default="./PGS_results",
                        help="Output directory")
    parser.add_argument("--outputs", nargs='+',
                        choices=list(OUTPUT_CHOICES),
                        default=list(OUTPUT_CHOICES),
                        help="Figures to generate")

    # Split
    parser.add_argument("--n-test", type=int, default=None,
                        help="Number of test individuals")
    parser.add_argument("--test-fraction", type=float, default=0.2,
                        help="Fraction of test individuals (when --n-test is not set)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed")

    # Models
    parser.add_argument("--models", nargs='+',
                        choices=list(MODEL_CHOICES),
                        default=list(MODEL_CHOICES),
                        help="Models to build")
    parser.add_argument("--p-cutoffs", type=_float_list, default=[5e-8, 1e-5, 1e-3, 0.05],
                        help="Comma-separated p-value cutoffs for thresholding")
    parser.add_argument("--clumping-r2", type=float, default=0.2,
                        help="r2 threshold of the clumping model")
    parser.add_argument("--ld-size", type=float, default=500,
                        help="LD window in kb (or cM with --genetic-map)")
    parser.add_argument("--genetic-map", action='store_true',
                        help="Use the CM column of the map for LD windows")
    parser.add_argument("--burn-in", type=int, default=50,
                        help="Burn-in sweeps of the LDpred2-grid chains")
    parser.add_argument("--num-iter", type=int, default=100,
                        help="Averaged sweeps of the LDpred2-grid chains")
    parser.add_argument("--auto-chains", type=int, default=8,
                        help="Number of LDpred2-auto chains")
    parser.add_argument("--auto-burn-in", type=int, default=500,
                        help="Burn-in sweeps of the LDpred2-auto chains")
    parser.add_argument("--auto-num-iter", type=int, default=200,
                        help="Averaged sweeps of the LDpred2-auto chains")
    parser.add_argument("--n-jobs", type=int, default=1,
                        help="Worker processes for LDpred2")
    parser.add_argument("--nboot", type=int, default=1000,
                        help="Bootstrap replicates for AUC intervals")

    # Loader options
    parser.add_argument("--keep-monomorphic", action='store_false', dest='drop_monomorphic',
                        help="Keep monomorphic markers")
    parser.add_argument("--max-missing", type=float, default=1.0)
    parser.add_argument("--min-maf", type=float, default=0.0)
    parser.add_argument("--quiet", action='store_true',
                        help="Suppress progress messages")

    parser.set_defaults(drop_monomorphic=True)

    args = parser.parse_args(argv)
    if args.phenotype is not None and args.fam_phenotype:
        parser.error("--phenotype and --fam-phenotype are mutually exclusive")
    return args

#!/usr/bin/env python3
"""
Polygenic score tutorial: GWAS on a training set, then all-SNP, thresholding,
clumping, C+T, SCT and LDpred2 scores compared on a test set.
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pgslab.cli.utils import normalize_models, normalize_outputs, parse_args
from pgslab.pipelines.tutorial import PGSTutorialPipeline


def main(argv=None):
    args = parse_args(argv)

    pipeline = PGSTutorialPipeline(output_dir=args.outputdir, seed=args.seed, verbose=not args.quiet)

    # 1. Genotypes
    pipeline.load_genotypes(
        args.bfile,
        drop_monomorphic=args.drop_monomorphic,
        max_missing=args.max_missing,
        min_maf=args.min_maf,
    )

    # 2. Phenotype
    if args.phenotype is not None:
        pipeline.load_phenotype(args.phenotype, id_column=args.phenotype_id_column,
                                trait_column=args.trait)
    elif args.fam_phenotype:
        pipeline.load_phenotype(from_fam=True)
    else:
        pipeline.simulate_phenotype(h2=args.h2, n_causal=args.n_causal,
                                    prevalence=args.prevalence, alpha=args.alpha)

    # 3. Split
    if args.n_test is not None:
        pipeline.split(n_test=args.n_test)
    else:
        pipeline.split(test_fraction=args.test_fraction)

    # 4. GWAS
    pipeline.run_gwas()

    # 5. LD
    models = normalize_models(args.models)
    if any(m.startswith('ldpred2') for m in models):
        pipeline.compute_ld(size=args.ld_size, use_genetic_map=args.genetic_map)

    # 6. Models
    pipeline.build_models(
        models=models,
        p_cutoffs=args.p_cutoffs,
        clumping_thr_r2=args.clumping_r2,
        burn_in=args.burn_in,
        num_iter=args.num_iter,
        auto_chains=args.auto_chains,
        auto_burn_in=args.auto_burn_in,
        auto_num_iter=args.auto_num_iter,
        n_jobs=args.n_jobs,
    )

    # 7. Evaluation and report
    pipeline.evaluate(nboot=args.nboot)
    files = pipeline.report(outputs=normalize_outputs(args.outputs))
    print(f"Done. {len(files)} files written to {pipeline.output_dir}")


if __name__ == "__main__":
    main()

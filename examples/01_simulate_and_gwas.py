#!/usr/bin/env python3
"""
Example 01: Simulated Phenotype and GWAS

Simulates a quantitative trait with known heritability from PLINK genotypes,
splits individuals into a training and a test set and runs a linear GWAS on
the training set.

Prerequisites:
- tutorial_data.bed/.bim/.fam: PLINK genotype files
"""

from pgslab.pipelines.tutorial import PGSTutorialPipeline


def main():
    print("=" * 70)
    print("EXAMPLE 01: Simulated Phenotype and GWAS")
    print("=" * 70)

    pipeline = PGSTutorialPipeline(output_dir='./example01_results', seed=42)

    print("\n1. Loading genotypes...")
    pipeline.load_genotypes('tutorial_data')

    # 300 causal variants explaining 40% of the phenotypic variance
    print("\n2. Simulating phenotype...")
    pipeline.simulate_phenotype(h2=0.4, n_causal=300)

    print("\n3. Splitting individuals...")
    pipeline.split(test_fraction=0.2)

    print("\n4. Running GWAS on the training set...")
    pipeline.run_gwas()

    # Manhattan plot with the simulated causal variants highlighted
    pipeline.report(outputs=['manhattan', 'qq'])

    print("\n" + "=" * 70)
    print("Analysis Complete!")
    print("=" * 70)
    print("\nResults saved to: ./example01_results/")
    print("- gwas.linear.assoc.txt       (effects, SEs, p-values)")
    print("- gwas.ma                     (summary statistics)")
    print("- gwas_GWAS_manhattan.png     (Manhattan plot)")
    print("- gwas_GWAS_qq.png            (QQ plot)")


if __name__ == '__main__':
    main()

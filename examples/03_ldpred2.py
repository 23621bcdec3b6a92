#!/usr/bin/env python3
"""
Example 03: LDpred2 from Summary Statistics

Runs a GWAS on a simulated binary trait, reads the summary statistics back
from the .ma file, computes a sparse LD matrix and derives LDpred2-inf,
LDpred2-grid and LDpred2-auto effects. Accuracy is reported as AUC on the
test set.

Prerequisites:
- tutorial_data.bed/.bim/.fam: PLINK genotype files
"""

import numpy as np
import pandas as pd

from pgslab.association.logistic import PGS_LogisticGWAS
from pgslab.data.load_genotype_plink import load_genotype_plink
from pgslab.data.sumstats import match_sumstats, read_ma, results_to_sumstats, write_ma
from pgslab.evaluation.metrics import AUC, AUCBoot
from pgslab.matrix.ld import PGS_LD
from pgslab.prs.ldpred import (
    PGS_LDpredAuto,
    PGS_LDpredGrid,
    PGS_LDpredInf,
    combine_auto_chains,
    filter_auto_chains,
    grid_param,
    seq_log,
)
from pgslab.prs.ldsc import PGS_LDSC
from pgslab.prs.scoring import PGS_Score
from pgslab.simulation.phenotype import simulate_phenotype, split_train_test


def main():
    print("=" * 70)
    print("EXAMPLE 03: LDpred2")
    print("=" * 70)

    geno, ids, geno_map = load_genotype_plink('tutorial_data')
    pheno = simulate_phenotype(geno, h2=0.5, n_causal=500, prevalence=0.2, seed=2)
    ind_train, ind_test = split_train_test(geno.n_individuals, n_test=300, seed=2)
    y = pheno.values

    # Summary statistics written and read back as a .ma file
    gwas = PGS_LogisticGWAS(y[ind_train], geno, ind_train=ind_train)
    freq = geno.calculate_allele_frequencies(ind_row=ind_train)
    write_ma(results_to_sumstats(gwas, geno_map, allele_freq=freq), 'example03.ma')
    sumstats = match_sumstats(read_ma('example03.ma'), geno_map)
    sumstats = sumstats[np.isfinite(sumstats['se']) & (sumstats['se'] > 0)].reset_index(drop=True)
    ind_col = sumstats['_NUM_ID_'].to_numpy()
    df_beta = pd.DataFrame({'beta': sumstats['b'], 'beta_se': sumstats['se'], 'n_eff': sumstats['N']})

    # LD within 3 Mb windows, on the training individuals
    corr = PGS_LD(geno, geno_map, size=3000, ind_row=ind_train, ind_col=ind_col)
    ld = corr.ld_scores()
    chi2 = (df_beta['beta'] / df_beta['beta_se']) ** 2
    _, _, h2_est, h2_se = PGS_LDSC(ld, len(ld), chi2.to_numpy(), df_beta['n_eff'].to_numpy())
    print(f"\nLDSC h2 = {h2_est:.3f} ({h2_se:.3f})")
    h2_est = max(h2_est, 0.01)

    def test_auc(weights):
        pred = PGS_Score(geno, weights, ind_row=ind_test, ind_col=ind_col)
        return AUCBoot(pred, y[ind_test], nboot=200, seed=0)

    beta_inf = PGS_LDpredInf(corr, df_beta, h2=h2_est)
    print("LDpred2-inf AUC: %.3f [%.3f-%.3f]" % test_auc(beta_inf)[:3])

    params = grid_param(seq_log(1e-4, 1, 10), [h2_est * f for f in (0.7, 1.0, 1.4)])
    beta_grid = PGS_LDpredGrid(corr, df_beta, params, seed=2)
    pred_train = PGS_Score(geno, beta_grid, ind_row=ind_train, ind_col=ind_col)
    auc_train = [AUC(pred_train[:, k], y[ind_train])
                 if np.all(np.isfinite(pred_train[:, k])) else np.nan
                 for k in range(len(params))]
    best = int(np.nanargmax(auc_train))
    print(f"LDpred2-grid best: {params.iloc[best].to_dict()}")
    print("LDpred2-grid AUC: %.3f [%.3f-%.3f]" % test_auc(beta_grid[:, best])[:3])

    chains = PGS_LDpredAuto(corr, df_beta, h2_init=h2_est, vec_p_init=seq_log(1e-4, 0.5, 6), seed=2)
    pred_auto = PGS_Score(geno, np.column_stack([c.beta_est for c in chains]),
                          ind_row=ind_train, ind_col=ind_col)
    keep = filter_auto_chains(chains, pred_auto.std(axis=0))
    beta_auto = combine_auto_chains(chains, keep)
    print(f"LDpred2-auto: p = {np.mean([chains[i].p_est for i in keep]):.2g}, "
          f"h2 = {np.mean([chains[i].h2_est for i in keep]):.3f}")
    print("LDpred2-auto AUC: %.3f [%.3f-%.3f]" % test_auc(beta_auto)[:3])


if __name__ == '__main__':
    main()

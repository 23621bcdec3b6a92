"""
Polygenic Score Tutorial Pipeline

An object-oriented walk through polygenic score (PGS) construction: load
genotypes, simulate (or load) a phenotype, split individuals into training
and test sets, run a GWAS on the training set, compute LD, derive several
candidate scoring models and compare their accuracy on the test set.
"""

import re
import time
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from ..association.glm import PGS_GLM
from ..association.logistic import PGS_LogisticGWAS
from ..data.io_utils import save_association_results, save_correlation_matrix, save_scores
from ..data.load_genotype_plink import load_genotype_plink, read_fam
from ..data.sumstats import load_phenotype_file, match_sumstats, read_ma, results_to_sumstats, write_ma
from ..evaluation.metrics import AUC, compare_models, r2_score
from ..matrix.ld import PGS_LD
from ..prs.clumping import PGS_Clumping, PGS_GridClumping
from ..prs.ldpred import (
    PGS_LDpredAuto,
    PGS_LDpredGrid,
    PGS_LDpredInf,
    combine_auto_chains,
    df_beta_from_results,
    filter_auto_chains,
    grid_param,
    seq_log,
)
from ..prs.ldsc import PGS_LDSC
from ..prs.scoring import (
    PGS_GridPRS,
    PGS_Score,
    PGS_Stacking,
    all_snp_weights,
    clumped_weights,
    threshold_weights,
)
from ..simulation.phenotype import SimulatedPhenotype, simulate_phenotype, split_train_test
from ..utils.data_types import AssociationResults, CorrelationMatrix, GenotypeMap, GenotypeMatrix, PGSModel
from ..visualization.manhattan import PGS_Report
from ..visualization.pgs_plots import (
    plot_auto_chains,
    plot_ct_grid,
    plot_effect_comparison,
    plot_ldpred_grid,
    plot_model_comparison,
    plot_score_distribution,
)

MODEL_CHOICES = (
    'all',
    'threshold',
    'clumping',
    'ct',
    'sct',
    'ldpred2_inf',
    'ldpred2_grid',
    'ldpred2_auto',
)

OUTPUT_CHOICES = (
    'manhattan',
    'qq',
    'comparison',
    'scores',
    'ct_grid',
    'ldpred',
    'effects',
)


def _slug(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9]+', '_', name).strip('_').lower()


class PGSTutorialPipeline:
    """
    Step-by-step polygenic score construction and evaluation.

    Typical workflow:
        1. Load genotypes (PLINK) or hand over in-memory data
        2. Simulate a phenotype with known heritability, or load one
        3. Split individuals into training and test sets
        4. Run a GWAS on the training set and write .ma summary statistics
        5. Compute the LD matrix and an LDSC heritability estimate
        6. Build candidate models (all SNPs, thresholding, clumping, C+T,
           SCT, LDpred2-inf/grid/auto)
        7. Evaluate every model on the test set and write a report

    Every step stores its results as attributes and requires the previous
    ones; calling a step too early raises ValueError.

    Example:
        >>> pipeline = PGSTutorialPipeline(output_dir='./pgs_tutorial', seed=1)
        >>> pipeline.load_genotypes('data/public-data')
        >>> pipeline.simulate_phenotype(h2=0.4, n_causal=300, prevalence=0.2)
        >>> pipeline.split(n_test=500)
        >>> pipeline.run_gwas()
        >>> pipeline.compute_ld()
        >>> pipeline.build_models()
        >>> pipeline.evaluate()
        >>> pipeline.report()
    """

    def __init__(self, output_dir: Union[str, Path] = "./PGS_results", seed: Optional[int] = None,
                 verbose: bool = True):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.seed = seed
        self.verbose = verbose

        # Data
        self.genotype_matrix: Optional[GenotypeMatrix] = None
        self.geno_map: Optional[GenotypeMap] = None
        self.individual_ids: List[str] = []

        # Phenotype
        self.phenotype: Optional[np.ndarray] = None
        self.binary: bool = False
        self.simulated: Optional[SimulatedPhenotype] = None

        # Split
        self.ind_train: Optional[np.ndarray] = None
        self.ind_test: Optional[np.ndarray] = None

        # GWAS / LD
        self.gwas: Optional[AssociationResults] = None
        self.sumstats: Optional[pd.DataFrame] = None
        self.lpval: Optional[np.ndarray] = None
        self.ind_ok: Optional[np.ndarray] = None
        self.corr: Optional[CorrelationMatrix] = None
        self.ldsc: Optional[Dict[str, float]] = None
        self.h2_est: Optional[float] = None

        # Models
        self.models: Dict[str, PGSModel] = {}
        self.grid_prs = None
        self.ct_metric: Optional[np.ndarray] = None
        self.ldpred_params: Optional[pd.DataFrame] = None
        self.ldpred_betas: Optional[np.ndarray] = None
        self.ldpred_metric: Optional[np.ndarray] = None
        self.auto_chains: List[Any] = []
        self.auto_keep: Optional[np.ndarray] = None

        # Evaluation
        self.test_scores: Optional[pd.DataFrame] = None
        self.comparison: Optional[pd.DataFrame] = None
        self.files_created: List[str] = []

    def log(self, message: str):
        """Internal logger"""
        if self.verbose:
            print(message)

    def log_step(self, step_name: str, start_time: Optional[float] = None):
        """Log a pipeline step with optional timing"""
        if start_time is not None:
            self.log(f"{step_name} completed in {time.time() - start_time:.2f} seconds")
        else:
            self.log(f"{step_name}...")

    # ------------------------------------------------------------------
    # Prerequisites
    # ------------------------------------------------------------------

    def _require_genotypes(self):
        if self.genotype_matrix is None:
            raise ValueError("Genotypes not loaded. Call load_genotypes() first.")

    def _require_phenotype(self):
        self._require_genotypes()
        if self.phenotype is None:
            raise ValueError("Phenotype missing. Call simulate_phenotype() or load_phenotype() first.")

    def _require_split(self):
        self._require_phenotype()
        if self.ind_train is None:
            raise ValueError("No training/test split. Call split() first.")

    def _require_gwas(self):
        self._require_split()
        if self.gwas is None:
            raise ValueError("GWAS not run. Call run_gwas() first.")

    def _require_ld(self):
        self._require_gwas()
        if self.corr is None:
            raise ValueError("LD matrix missing. Call compute_ld() first.")

    def _require_models(self):
        self._require_split()
        if not self.models:
            raise ValueError("No models built. Call build_models() first.")

    def _record(self, path: Union[str, Path]):
        self.files_created.append(str(path))

    # ------------------------------------------------------------------
    # Step 1: genotypes
    # ------------------------------------------------------------------

    def load_genotypes(self, bfile: Union[str, Path], drop_monomorphic: bool = True,
                       max_missing: float = 1.0, min_maf: float = 0.0,
                       force_recache: bool = False):
        """Load a PLINK .bed/.bim/.fam trio (missing calls imputed)."""
        step_start = time.time()
        self.log_step("Step 1: Loading genotypes")
        geno, ids, geno_map = load_genotype_plink(
            bfile, drop_monomorphic=drop_monomorphic, max_missing=max_missing,
            min_maf=min_maf, force_recache=force_recache, verbose=self.verbose,
        )
        self.set_genotypes(geno, ids, geno_map)
        self.bfile = Path(bfile)
        self.log_step("Genotype loading", step_start)

    def set_genotypes(self, geno: Union[GenotypeMatrix, np.ndarray], individual_ids: Sequence[str],
                      geno_map: GenotypeMap):
        """Use in-memory genotypes instead of a PLINK file."""
        if not isinstance(geno, GenotypeMatrix):
            geno = GenotypeMatrix(np.asarray(geno))
        if len(individual_ids) != geno.n_individuals:
            raise ValueError("Number of IDs does not match the number of individuals")
        if geno_map.n_markers != geno.n_markers:
            raise ValueError("Map marker count does not match the genotype matrix")
        self.genotype_matrix = geno
        self.individual_ids = [str(i) for i in individual_ids]
        self.geno_map = geno_map
        self.log(f"   {geno.n_individuals} individuals x {geno.n_markers} markers")

    # ------------------------------------------------------------------
    # Step 2: phenotype
    # ------------------------------------------------------------------

    def simulate_phenotype(self, h2: float = 0.4, n_causal: int = 300,
                           prevalence: Optional[float] = None, alpha: float = -1.0,
                           effects_dist: str = 'gaussian'):
        """Simulate a phenotype with heritability h2 from the loaded genotypes."""
        self._require_genotypes()
        step_start = time.time()
        self.log_step("Step 2: Simulating phenotype")
        self.simulated = simulate_phenotype(
            self.genotype_matrix, h2=h2, n_causal=n_causal, prevalence=prevalence,
            alpha=alpha, effects_dist=effects_dist, seed=self.seed,
        )
        self.phenotype = self.simulated.values
        self.binary = self.simulated.is_binary
        if self.binary:
            self.log(f"   Binary trait: {int(self.phenotype.sum())} cases / {len(self.phenotype)} "
                     f"(K = {prevalence})")
        else:
            self.log(f"   Quantitative trait, var = {self.phenotype.var():.3f}")
        self.log(f"   h2 = {h2}, {n_causal} causal variants")
        pd.DataFrame({'ID': self.individual_ids, 'Trait': self.phenotype}).to_csv(
            self.output_dir / 'phenotype.tsv', sep='\t', index=False)
        self._record(self.output_dir / 'phenotype.tsv')
        self.log_step("Phenotype simulation", step_start)

    def load_phenotype(self, phenotype_file: Optional[Union[str, Path]] = None,
                       id_column: Optional[str] = None, trait_column: Optional[str] = None,
                       from_fam: bool = False):
        """Load a phenotype from a file, or from the .fam of the loaded PLINK data.

        Individuals without a phenotype are dropped from the genotype data.
        PLINK case/control coding (1 = control, 2 = case) is converted to 0/1.
        """
        self._require_genotypes()
        step_start = time.time()
        self.log_step("Step 2: Loading phenotype")
        if from_fam:
            if not hasattr(self, 'bfile'):
                raise ValueError("No PLINK file loaded to read the .fam phenotype from")
            fam = read_fam(Path(f"{self.bfile}.fam") if self.bfile.suffix != '.bed'
                           else self.bfile.with_suffix('.fam'))
            pheno_df = pd.DataFrame({'ID': fam['IID'].astype(str), 'Trait': fam['PHENO']})
        elif phenotype_file is not None:
            pheno_df = load_phenotype_file(phenotype_file, id_column=id_column, trait_column=trait_column)
        else:
            raise ValueError("Provide phenotype_file or set from_fam=True")

        pheno_df = pheno_df.dropna(subset=['Trait']).drop_duplicates('ID')
        lookup = dict(zip(pheno_df['ID'], pheno_df['Trait']))
        keep = np.array([i for i, iid in enumerate(self.individual_ids) if iid in lookup], dtype=int)
        if len(keep) == 0:
            raise ValueError("No individuals with both genotypes and phenotype")
        if len(keep) < len(self.individual_ids):
            self.log(f"   Keeping {len(keep)} of {len(self.individual_ids)} genotyped individuals")
            self.genotype_matrix = self.genotype_matrix.subset_individuals(keep)
            self.individual_ids = [self.individual_ids[i] for i in keep]

        values = np.array([lookup[iid] for iid in self.individual_ids], dtype=np.float64)
        levels = set(np.unique(values))
        if levels <= {1.0, 2.0} and len(levels) == 2:
            values = values - 1.0
        self.phenotype = values
        self.binary = set(np.unique(values)) <= {0.0, 1.0}
        self.simulated = None
        self.log(f"   {'Binary' if self.binary else 'Quantitative'} trait for {len(values)} individuals")
        self.log_step("Phenotype loading", step_start)

    # ------------------------------------------------------------------
    # Step 3: split
    # ------------------------------------------------------------------

    def split(self, n_test: Optional[int] = None, test_fraction: Optional[float] = None):
        """Randomly split individuals into training and test sets."""
        self._require_phenotype()
        self.ind_train, self.ind_test = split_train_test(
            len(self.phenotype), n_test=n_test, test_fraction=test_fraction, seed=self.seed)
        self.log(f"Step 3: {len(self.ind_train)} training / {len(self.ind_test)} test individuals")
        if self.binary:
            for name, idx in (('training', self.ind_train), ('test', self.ind_test)):
                y = self.phenotype[idx]
                if y.min() == y.max():
                    raise ValueError(f"The {name} set has no {'cases' if y.max() == 0 else 'controls'}")

    # ------------------------------------------------------------------
    # Step 4: GWAS
    # ------------------------------------------------------------------

    def run_gwas(self, maxLine: int = 1000):
        """GWAS on the training set (logistic for 0/1 traits, linear otherwise)."""
        self._require_split()
        step_start = time.time()
        self.log_step("Step 4: Running GWAS on the training set")
        y_train = self.phenotype[self.ind_train]
        if self.binary:
            results = PGS_LogisticGWAS(y_train, self.genotype_matrix, ind_train=self.ind_train,
                                       maxLine=maxLine, verbose=self.verbose)
        else:
            results = PGS_GLM(y_train, self.genotype_matrix, ind_train=self.ind_train,
                              maxLine=maxLine, verbose=self.verbose)
        results.snp_map = self.geno_map
        self.gwas = results
        self.lpval = results.log10_pvalues
        self.ind_ok = np.where(np.isfinite(results.effects) & np.isfinite(results.se)
                               & (results.se > 0))[0]

        prefix = str(self.output_dir / 'gwas')
        for path in save_association_results({'logistic' if self.binary else 'linear': results}, prefix):
            self._record(path)

        if {'ALT', 'REF'} <= set(self.geno_map.data.columns):
            freq = self.genotype_matrix.calculate_allele_frequencies(ind_row=self.ind_train)
            sumstats = results_to_sumstats(results, self.geno_map, allele_freq=freq)
            ma_path = write_ma(sumstats, self.output_dir / 'gwas.ma')
            self._record(ma_path)
            self.sumstats = match_sumstats(read_ma(ma_path), self.geno_map, verbose=self.verbose)
        self.log(f"   {len(self.ind_ok)} of {results.n_markers} markers with usable effects")
        self.log_step("GWAS", step_start)

    # ------------------------------------------------------------------
    # Step 5: LD and heritability
    # ------------------------------------------------------------------

    def compute_ld(self, size: float = 500, thr_r2: float = 0.0, use_genetic_map: bool = False,
                   blocks: int = 200):
        """LD matrix of the usable SNPs (training individuals) and LDSC h2."""
        self._require_gwas()
        step_start = time.time()
        self.log_step("Step 5: Computing LD matrix")
        self.corr = PGS_LD(self.genotype_matrix, self.geno_map, size=size, thr_r2=thr_r2,
                           ind_row=self.ind_train, ind_col=self.ind_ok,
                           use_genetic_map=use_genetic_map, verbose=self.verbose)
        ld_path = save_correlation_matrix(self.corr, self.output_dir / 'ld_matrix.h5')
        self._record(ld_path)

        ld = self.corr.ld_scores()
        z = self.gwas.zscores[self.ind_ok] if self.gwas.zscores is not None \
            else self.gwas.effects[self.ind_ok] / self.gwas.se[self.ind_ok]
        n_eff = self.gwas.n_eff_array()[self.ind_ok]
        try:
            intercept, intercept_se, h2, h2_se = PGS_LDSC(
                ld, len(ld), z ** 2, n_eff, blocks=min(blocks, len(ld)))
        except ValueError as e:
            warnings.warn(f"LDSC could not be fitted: {e}")
            intercept = intercept_se = h2 = h2_se = np.nan
        self.ldsc = {'intercept': intercept, 'intercept_se': intercept_se, 'h2': h2, 'h2_se': h2_se}
        self.log(f"   LDSC: intercept = {intercept:.3f} ({intercept_se:.3f}), "
                 f"h2 = {h2:.3f} ({h2_se:.3f})")
        if not h2 > 0.01:
            warnings.warn(f"LDSC h2 estimate {h2:.3g} is too small; using 0.01 to initialise LDpred2")
        self.h2_est = float(h2) if h2 > 0.01 else 0.01
        self.log_step("LD computation", step_start)

    # ------------------------------------------------------------------
    # Step 6: models
    # ------------------------------------------------------------------

    def _train_metric(self, scores: np.ndarray) -> np.ndarray:
        """Accuracy of each score column on the training set (used for model choice)."""
        y = self.phenotype[self.ind_train]
        scores = np.atleast_2d(scores.T).T
        metric = np.full(scores.shape[1], np.nan)
        for k in range(scores.shape[1]):
            col = scores[:, k]
            if not np.all(np.isfinite(col)):
                continue
            metric[k] = AUC(col, y) if self.binary else r2_score(col, y)
        return metric

    def _add_model(self, name: str, weights: np.ndarray, **params):
        model = PGSModel(name, weights, params)
        if model.n_nonzero == 0:
            warnings.warn(f"Model '{name}' has no SNP with non-zero weight")
        self.models[name] = model
        path = self.output_dir / 'weights' / f"{_slug(name)}.tsv"
        path.parent.mkdir(parents=True, exist_ok=True)
        model.to_dataframe(self.geno_map).to_csv(path, sep='\t', index=False)
        self._record(path)
        self.log(f"   {name}: {model.n_nonzero} SNPs")

    def build_models(self,
                     models: Sequence[str] = MODEL_CHOICES,
                     p_cutoffs: Sequence[float] = (5e-8, 1e-5, 1e-3, 0.05),
                     clumping_thr_r2: float = 0.2,
                     grid_thr_r2: Sequence[float] = (0.01, 0.05, 0.1, 0.2, 0.5, 0.8, 0.95),
                     grid_base_size: Sequence[float] = (50, 100, 200, 500),
                     ldpred_p_seq: Optional[Sequence[float]] = None,
                     ldpred_h2_factors: Sequence[float] = (0.3, 0.7, 1.0, 1.4),
                     burn_in: int = 50,
                     num_iter: int = 100,
                     auto_chains: int = 8,
                     auto_burn_in: int = 500,
                     auto_num_iter: int = 200,
                     n_jobs: int = 1):
        """Derive the candidate PGS models from the training GWAS.

        Args:
            models: Subset of MODEL_CHOICES to build
            p_cutoffs: p-value cutoffs of the thresholding models
            clumping_thr_r2: r2 threshold of the single clumping model
            grid_thr_r2, grid_base_size: Clumping grid of the C+T and SCT models
            ldpred_p_seq: p values of the LDpred2 grid (default 21 log-spaced
                values from 1e-5 to 1)
            ldpred_h2_factors: Multiples of the LDSC h2 in the LDpred2 grid
            burn_in, num_iter: Gibbs sweeps of the LDpred2-grid chains
            auto_chains: Number of LDpred2-auto chains
            auto_burn_in, auto_num_iter: Gibbs sweeps of the LDpred2-auto chains
            n_jobs: Worker processes for LDpred2
        """
        unknown = [m for m in models if m not in MODEL_CHOICES]
        if unknown:
            raise ValueError(f"Unknown models: {unknown}")
        self._require_gwas()
        if any(m.startswith('ldpred2') for m in models):
            self._require_ld()

        step_start = time.time()
        self.log_step("Step 6: Building PGS models")
        geno = self.genotype_matrix
        betas = self.gwas.effects
        lpval = self.lpval
        m = geno.n_markers
        seed = self.seed

        if 'all' in models:
            self._add_model('All SNPs', all_snp_weights(betas))

        if 'threshold' in models:
            for cutoff in p_cutoffs:
                self._add_model(f'P < {cutoff:g}', threshold_weights(betas, lpval, -np.log10(cutoff)),
                                p_cutoff=cutoff)

        if 'clumping' in models:
            keep = PGS_Clumping(geno, self.geno_map, S=lpval, thr_r2=clumping_thr_r2,
                                ind_row=self.ind_train, verbose=self.verbose)
            self._add_model('Clumping', clumped_weights(betas, keep), thr_r2=clumping_thr_r2)

        if 'ct' in models or 'sct' in models:
            grid = PGS_GridClumping(geno, self.geno_map, lpval, grid_thr_r2=grid_thr_r2,
                                    grid_base_size=grid_base_size, ind_row=self.ind_train,
                                    verbose=self.verbose)
            self.grid_prs = PGS_GridPRS(geno, betas, lpval, grid, ind_row=self.ind_train,
                                        verbose=self.verbose)
            self.ct_metric = self._train_metric(self.grid_prs.scores)
            if 'ct' in models:
                best = self.grid_prs.best(self.ct_metric)
                row = self.grid_prs.params.iloc[best]
                self._add_model('C+T (best)', self.grid_prs.column_weights(best),
                                thr_r2=float(row['thr_r2']), size=float(row['size']),
                                thr_lp=float(row['thr_lp']))
            if 'sct' in models:
                stacking = PGS_Stacking(self.grid_prs, self.phenotype[self.ind_train],
                                        family='binomial' if self.binary else 'gaussian',
                                        seed=seed, verbose=self.verbose)
                self._add_model('SCT', stacking.weights, intercept=stacking.intercept)

        if any(mod.startswith('ldpred2') for mod in models):
            df_beta = df_beta_from_results(self.gwas).iloc[self.ind_ok].reset_index(drop=True)

            def expand(beta_ok: np.ndarray) -> np.ndarray:
                full = np.zeros(m)
                full[self.ind_ok] = beta_ok
                return full

            if 'ldpred2_inf' in models:
                beta_inf = PGS_LDpredInf(self.corr, df_beta, h2=self.h2_est)
                self._add_model('LDpred2-inf', expand(beta_inf), h2=self.h2_est)

            if 'ldpred2_grid' in models:
                p_seq = seq_log(1e-5, 1.0, 21) if ldpred_p_seq is None else ldpred_p_seq
                h2_seq = [round(self.h2_est * f, 4) for f in ldpred_h2_factors]
                self.ldpred_params = grid_param(p_seq, h2_seq, sparse=(False, True))
                beta_grid = PGS_LDpredGrid(self.corr, df_beta, self.ldpred_params, burn_in=burn_in,
                                           num_iter=num_iter, n_jobs=n_jobs, seed=seed,
                                           verbose=self.verbose)
                self.ldpred_betas = beta_grid
                pred = PGS_Score(geno, beta_grid, ind_row=self.ind_train, ind_col=self.ind_ok)
                self.ldpred_metric = self._train_metric(pred)
                best = int(np.nanargmax(self.ldpred_metric))
                row = self.ldpred_params.iloc[best]
                self._add_model('LDpred2-grid (best)', expand(beta_grid[:, best]),
                                p=float(row['p']), h2=float(row['h2']), sparse=bool(row['sparse']))

            if 'ldpred2_auto' in models:
                self.auto_chains = PGS_LDpredAuto(
                    self.corr, df_beta, h2_init=self.h2_est,
                    vec_p_init=seq_log(1e-4, 0.5, auto_chains),
                    burn_in=auto_burn_in, num_iter=auto_num_iter, n_jobs=n_jobs,
                    seed=seed, verbose=self.verbose)
                beta_auto = np.column_stack([c.beta_est for c in self.auto_chains])
                pred = PGS_Score(geno, beta_auto, ind_row=self.ind_train, ind_col=self.ind_ok)
                self.auto_keep = filter_auto_chains(self.auto_chains, pred.std(axis=0))
                kept = [self.auto_chains[i] for i in self.auto_keep]
                self._add_model('LDpred2-auto', expand(combine_auto_chains(self.auto_chains, self.auto_keep)),
                                n_chains_kept=int(len(self.auto_keep)),
                                p_est=float(np.mean([c.p_est for c in kept])),
                                h2_est=float(np.mean([c.h2_est for c in kept])))

        self.log_step("Model building", step_start)

    # ------------------------------------------------------------------
    # Step 7: evaluation
    # ------------------------------------------------------------------

    def evaluate(self, nboot: int = 1000):
        """Score the test set with every model and compare accuracy."""
        self._require_models()
        step_start = time.time()
        self.log_step("Step 7: Evaluating models on the test set")
        names = list(self.models)
        W = np.column_stack([self.models[name].weights for name in names])
        scores = PGS_Score(self.genotype_matrix, W, ind_row=self.ind_test)

        self.test_scores = pd.DataFrame(scores, columns=names)
        self.test_scores.insert(0, 'ID', [self.individual_ids[i] for i in self.ind_test])
        self.test_scores.insert(1, 'Trait', self.phenotype[self.ind_test])
        self._record(save_scores(self.test_scores, self.output_dir / 'test_scores.tsv'))

        self.comparison = compare_models(
            {name: scores[:, k] for k, name in enumerate(names)},
            self.phenotype[self.ind_test],
            binary=self.binary,
            n_snps={name: self.models[name].n_nonzero for name in names},
            nboot=nboot,
            seed=self.seed,
        )
        path = self.output_dir / 'model_comparison.tsv'
        self.comparison.to_csv(path, sep='\t', index=False)
        self._record(path)

        if self.verbose:
            self.log(self.comparison.to_string(index=False, float_format=lambda v: f"{v:.4f}"))
        self.log_step("Evaluation", step_start)
        return self.comparison

    # ------------------------------------------------------------------
    # Step 8: report
    # ------------------------------------------------------------------

    def _save_figure(self, fig, name: str, dpi: int):
        path = self.output_dir / f"{name}.png"
        fig.savefig(path, dpi=dpi, bbox_inches='tight')
        plt.close(fig)
        self._record(path)

    def report(self, outputs: Sequence[str] = OUTPUT_CHOICES, dpi: int = 150) -> List[str]:
        """Write the figures of the tutorial; returns the list of files created so far."""
        unknown = [o for o in outputs if o not in OUTPUT_CHOICES]
        if unknown:
            raise ValueError(f"Unknown outputs: {unknown}")
        self._require_gwas()
        step_start = time.time()
        self.log_step("Step 8: Writing report")

        gwas_plots = [o for o in outputs if o in ('manhattan', 'qq')]
        if gwas_plots:
            causal = self.simulated.causal_indices if self.simulated is not None else None
            gwas_report = PGS_Report(self.gwas, map_data=self.geno_map, plot_types=gwas_plots,
                                     output_prefix=self.output_dir / 'gwas', dpi=dpi,
                                     causal_indices=causal, verbose=self.verbose)
            self.files_created.extend(gwas_report['files_created'])
            for plots in gwas_report['plots'].values():
                for fig in plots.values():
                    plt.close(fig)

        if 'comparison' in outputs and self.comparison is not None:
            self._save_figure(plot_model_comparison(self.comparison), 'model_comparison', dpi)

        if 'scores' in outputs and self.comparison is not None:
            best = str(self.comparison['Model'].iloc[0])
            fig = plot_score_distribution(self.test_scores[best].to_numpy(),
                                          self.phenotype[self.ind_test], binary=self.binary,
                                          title=best)
            self._save_figure(fig, 'best_score_distribution', dpi)

        metric_name = 'AUC' if self.binary else 'R2'
        if 'ct_grid' in outputs and self.grid_prs is not None:
            self._save_figure(plot_ct_grid(self.grid_prs.params, self.ct_metric, metric_name),
                              'ct_grid', dpi)

        if 'ldpred' in outputs:
            if self.ldpred_params is not None:
                self._save_figure(plot_ldpred_grid(self.ldpred_params, self.ldpred_metric, metric_name),
                                  'ldpred2_grid', dpi)
            if self.auto_chains:
                self._save_figure(plot_auto_chains(self.auto_chains, self.auto_keep), 'ldpred2_auto_chains', dpi)

        if 'effects' in outputs and self.simulated is not None and self.models:
            true_w = self.simulated.true_weights(self.genotype_matrix.n_markers)
            for name in ('LDpred2-auto', 'LDpred2-inf', 'All SNPs'):
                if name in self.models:
                    fig = plot_effect_comparison(self.models[name].weights, true_w, title=name)
                    self._save_figure(fig, f"effects_{_slug(name)}", dpi)
                    break

        self.log_step("Report", step_start)
        return list(self.files_created)

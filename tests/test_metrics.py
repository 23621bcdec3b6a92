import numpy as np
import pytest
from sklearn.metrics import roc_auc_score

from pgslab.evaluation.metrics import (
    AUC,
    AUCBoot,
    compare_models,
    evaluate_score,
    pcor,
    r2_score,
)


def _make_binary(n: int = 300, seed: int = 0):
    rng = np.random.default_rng(seed)
    target = rng.integers(0, 2, n).astype(float)
    pred = target * 0.8 + rng.standard_normal(n)
    return pred, target


def test_auc_matches_sklearn_and_handles_ties() -> None:
    pred, target = _make_binary()
    assert AUC(pred, target) == pytest.approx(roc_auc_score(target, pred))
    assert AUC(np.ones(10), np.array([0, 1] * 5)) == pytest.approx(0.5)
    assert AUC(np.array([0.1, 0.2, 0.9, 0.8]), np.array([0, 0, 1, 1])) == pytest.approx(1.0)


def test_auc_validation() -> None:
    with pytest.raises(ValueError):
        AUC(np.ones(3), np.array([0, 1, 2]))
    with pytest.raises(ValueError):
        AUC(np.ones(3), np.zeros(3))
    with pytest.raises(ValueError):
        AUC(np.ones(3), np.array([0, 1]))
    with pytest.raises(ValueError):
        AUC(np.array([np.nan, 1.0]), np.array([0, 1]))


def test_auc_boot() -> None:
    pred, target = _make_binary(seed=1)
    mean, low, high, sd = AUCBoot(pred, target, nboot=200, seed=3)

    assert low < AUC(pred, target) < high
    assert low < mean < high
    assert sd > 0
    assert AUCBoot(pred, target, nboot=200, seed=3) == (mean, low, high, sd)

    with pytest.raises(ValueError):
        AUCBoot(pred, target, nboot=1)


def test_auc_boot_redraws_single_class_resamples() -> None:
    pred = np.array([0.1, 0.9, 0.2, 0.3, 0.4])
    target = np.array([0, 1, 0, 0, 0], dtype=float)
    mean, low, high, _ = AUCBoot(pred, target, nboot=50, seed=0)
    assert mean == pytest.approx(1.0)
    assert low == pytest.approx(1.0)
    assert high == pytest.approx(1.0)


def test_r2_and_pcor() -> None:
    rng = np.random.default_rng(2)
    covar = rng.standard_normal(500)
    pred = rng.standard_normal(500)
    target = 0.5 * pred + 2.0 * covar + rng.standard_normal(500)

    assert r2_score(pred, target) == pytest.approx(np.corrcoef(pred, target)[0, 1] ** 2)
    assert r2_score(np.ones(5), np.arange(5.0)) == 0.0

    r, low, high = pcor(pred, target, covar)
    assert low < r < high
    assert r > np.sqrt(r2_score(pred, target))

    r0, low0, high0 = pcor(pred, target)
    assert r0 == pytest.approx(np.corrcoef(pred, target)[0, 1])

    r_const, low_const, high_const = pcor(np.ones(10), np.arange(10.0))
    assert r_const == 0.0
    assert np.isnan(low_const) and np.isnan(high_const)

    with pytest.raises(ValueError):
        pcor(pred[:3], target[:3], np.ones((3, 2)))
    with pytest.raises(ValueError):
        pcor(pred, target[:10])


def test_evaluate_score() -> None:
    pred, target = _make_binary(seed=4)
    res = evaluate_score(pred, target, binary=True, nboot=100, seed=0)
    assert res['metric'] == 'AUC'
    assert res['value'] == pytest.approx(AUC(pred, target))
    assert res['lower'] < res['value'] < res['upper']

    rng = np.random.default_rng(5)
    y = rng.standard_normal(200)
    res = evaluate_score(y + rng.standard_normal(200), y, binary=False)
    assert res['metric'] == 'R2'
    assert res['lower'] <= res['value'] <= res['upper']

    noise = evaluate_score(rng.standard_normal(200), y, binary=False)
    assert noise['lower'] == 0.0 or noise['lower'] <= noise['value']


def test_compare_models_sorted_best_first() -> None:
    pred, target = _make_binary(seed=6)
    rng = np.random.default_rng(7)
    scores = {'noise': rng.standard_normal(len(target)), 'good': pred, 'perfect': target}

    table = compare_models(scores, target, binary=True, n_snps={'good': 10}, nboot=50, seed=1)

    assert list(table.columns) == ['Model', 'n_snps', 'Metric', 'Value', 'Lower', 'Upper']
    assert list(table['Model']) == ['perfect', 'good', 'noise']
    assert table.loc[1, 'n_snps'] == 10
    assert np.isnan(table.loc[0, 'n_snps'])
    assert (table['Metric'] == 'AUC').all()

    with pytest.raises(ValueError):
        compare_models({}, target, binary=True)

# tests/test_diagnostics.py

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from psmbalance.diagnostics import (
    compute_weighted_stats, weighted_ks, expand_covariates, create_summary_table,
    bal_tab, check_balance_table,
)


def test_weighted_stats_unit_weights_match_numpy():
    x = np.array([1.0, 2.0, 4.0, 7.0])
    result = compute_weighted_stats(x, np.ones(4))
    assert result['mean'] == pytest.approx(x.mean())
    assert result['var'] == pytest.approx(x.var(ddof=1))


def test_weighted_stats_empty():
    result = compute_weighted_stats(np.array([]), np.array([]))
    assert np.isnan(result['mean'])


def test_weighted_ks_matches_scipy_with_unit_weights():
    rng = np.random.default_rng(3)
    a = rng.normal(0, 1, 50)
    b = rng.normal(0.5, 1.2, 70)
    ours = weighted_ks(a, np.ones(50), b, np.ones(70))
    assert ours == pytest.approx(stats.ks_2samp(a, b).statistic)


def test_weighted_ks_binary_is_difference_in_proportions():
    a = np.array([1, 1, 1, 0])
    b = np.array([1, 0, 0, 0, 0])
    assert weighted_ks(a, np.ones(4), b, np.ones(5)) == pytest.approx(0.75 - 0.2)


def test_weighted_ks_zero_weight_units_are_ignored():
    a = np.array([0.0, 1.0, 100.0])
    b = np.array([0.0, 1.0])
    assert weighted_ks(a, np.array([1.0, 1.0, 0.0]), b, np.ones(2)) == pytest.approx(0.0)


def test_weighted_ks_without_weight_is_nan():
    assert np.isnan(weighted_ks(np.array([1.0]), np.array([0.0]), np.array([2.0]), np.array([1.0])))


def test_expand_covariates(lalonde):
    terms, types = expand_covariates(lalonde, ['age', 'race', 'married', 'nodegree'])

    assert list(terms.columns) == ['age', 'race_Black', 'race_Hispanic', 'race_White', 'married_Other', 'nodegree']
    assert types['age'] == 'Contin.'
    assert types['nodegree'] == 'Binary'
    assert types['married_Other'] == 'Binary'
    # Race dummies partition the sample
    assert (terms[['race_Black', 'race_Hispanic', 'race_White']].sum(axis=1) == 1).all()
    assert terms['married_Other'].sum() == (lalonde['married'] == 'Other').sum()


def test_expand_covariates_unknown_column(lalonde):
    with pytest.raises(ValueError, match="height"):
        expand_covariates(lalonde, ['height'])


@pytest.fixture
def small():
    return pd.DataFrame({
        'treat': [1, 1, 1, 0, 0, 0, 0],
        'age':   [20.0, 30.0, 40.0, 25.0, 35.0, 45.0, 55.0],
        'flag':  [1, 1, 0, 0, 0, 0, 1],
    })


def test_summary_table_smd_conventions(small):
    weights = pd.Series(1.0, index=small.index)
    unmatched, matched = create_summary_table(small, ['age', 'flag'], 'treat', weights)

    # Continuous: divided by the treated SD
    expected = (30.0 - 40.0) / small.loc[small['treat'] == 1, 'age'].std()
    assert unmatched.loc['age', 'Std. Mean Diff.'] == pytest.approx(expected)
    # Binary: raw difference in proportions
    assert unmatched.loc['flag', 'Std. Mean Diff.'] == pytest.approx(2 / 3 - 1 / 4)
    assert np.isnan(unmatched.loc['flag', 'Var Ratio'])
    # Unit weights: matched equals unmatched
    pd.testing.assert_frame_equal(unmatched, matched)


def test_summary_table_uses_weights(small):
    # Only the 25 and 35 year old controls are kept
    weights = pd.Series([1, 1, 1, 1, 1, 0, 0], index=small.index, dtype=float)
    unmatched, matched = create_summary_table(small, ['age'], 'treat', weights)

    assert matched.loc['age', 'Means Control'] == pytest.approx(30.0)
    assert matched.loc['age', 'Std. Mean Diff.'] == pytest.approx(0.0)
    assert abs(matched.loc['age', 'Std. Mean Diff.']) < abs(unmatched.loc['age', 'Std. Mean Diff.'])


def test_summary_table_distance_first(small):
    distance = pd.Series(np.linspace(0.2, 0.8, len(small)), index=small.index)
    weights = pd.Series(1.0, index=small.index)
    unmatched, _ = create_summary_table(small, ['age'], 'treat', weights, distance=distance)

    assert list(unmatched.index) == ['distance', 'age']
    assert unmatched.loc['distance', 'Type'] == 'Distance'


def test_bal_tab_columns(small):
    weights = pd.Series([1, 1, 1, 1, 1, 0, 0], index=small.index, dtype=float)
    table = bal_tab(*create_summary_table(small, ['age', 'flag'], 'treat', weights))

    assert list(table.columns) == ['Type', 'Diff.Un', 'Diff.Adj', 'KS.Un', 'KS.Adj']
    assert list(table.index) == ['age', 'flag']
    check_balance_table(table, ['age', 'flag'])


def test_check_balance_table_rejects_missing_row(small):
    weights = pd.Series(1.0, index=small.index)
    table = bal_tab(*create_summary_table(small, ['age'], 'treat', weights))
    with pytest.raises(ValueError, match="flag"):
        check_balance_table(table, ['age', 'flag'])


def test_check_balance_table_rejects_empty_cell(small):
    weights = pd.Series(1.0, index=small.index)
    table = bal_tab(*create_summary_table(small, ['age', 'flag'], 'treat', weights))
    table.loc['flag', 'KS.Adj'] = np.nan
    with pytest.raises(ValueError, match="empty"):
        check_balance_table(table, ['age', 'flag'])


def test_check_balance_table_rejects_duplicates(small):
    weights = pd.Series(1.0, index=small.index)
    table = bal_tab(*create_summary_table(small, ['age'], 'treat', weights))
    with pytest.raises(ValueError, match="duplicate"):
        check_balance_table(pd.concat([table, table]), ['age'])


def test_summary_table_ate_uses_pooled_sd(small):
    weights = pd.Series(1.0, index=small.index)
    unmatched, _ = create_summary_table(small, ['age', 'flag'], 'treat', weights, estimand="ATE")

    var_t = small.loc[small['treat'] == 1, 'age'].var()
    var_c = small.loc[small['treat'] == 0, 'age'].var()
    expected = (30.0 - 40.0) / np.sqrt((var_t + var_c) / 2)
    assert unmatched.loc['age', 'Std. Mean Diff.'] == pytest.approx(expected)
    # Binary terms stay raw under ATE too
    assert unmatched.loc['flag', 'Std. Mean Diff.'] == pytest.approx(2 / 3 - 1 / 4)

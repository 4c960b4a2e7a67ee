# File: src/psmbalance/diagnostics.py

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype
from typing import Dict, List, Optional, Tuple

BALANCE_COLUMNS = ['Type', 'Diff.Un', 'Diff.Adj', 'KS.Un', 'KS.Adj']


def compute_weighted_stats(x: np.ndarray, weights: np.ndarray) -> dict:
    """
    Computes weighted mean and variance.
    """
    if len(x) == 0 or np.sum(weights) == 0:
        return {'mean': np.nan, 'var': np.nan, 'std': np.nan}

    weighted_mean = np.average(x, weights=weights)

    # Reliability weights
    numerator = np.sum(weights * (x - weighted_mean)**2)
    denominator = np.sum(weights) - 1
    weighted_var = numerator / denominator if denominator > 0 else 0.0

    return {
        'mean': weighted_mean,
        'var': weighted_var,
        'std': np.sqrt(weighted_var)
    }


def weighted_ecdf(x: np.ndarray, weights: np.ndarray, grid: np.ndarray) -> np.ndarray:
    """
    Evaluates the weighted empirical CDF of x at each point of grid.
    """
    order = np.argsort(x, kind="stable")
    x_sorted = x[order]
    cum_w = np.cumsum(weights[order]) / np.sum(weights)
    pos = np.searchsorted(x_sorted, grid, side="right")
    return np.where(pos > 0, cum_w[np.maximum(pos - 1, 0)], 0.0)


def weighted_ks(x_treat: np.ndarray, w_treat: np.ndarray, x_ctrl: np.ndarray, w_ctrl: np.ndarray) -> float:
    """
    Kolmogorov-Smirnov statistic between two weighted samples:
    the largest vertical gap between their eCDFs.
    For a 0/1 variable this equals the absolute difference in proportions.
    """
    x_treat = np.asarray(x_treat, dtype=float)
    x_ctrl = np.asarray(x_ctrl, dtype=float)
    w_treat = np.asarray(w_treat, dtype=float)
    w_ctrl = np.asarray(w_ctrl, dtype=float)

    if np.sum(w_treat) <= 0 or np.sum(w_ctrl) <= 0:
        return np.nan

    grid = np.union1d(x_treat, x_ctrl)
    gap = weighted_ecdf(x_treat, w_treat, grid) - weighted_ecdf(x_ctrl, w_ctrl, grid)
    return float(np.max(np.abs(gap)))


def expand_covariates(data: pd.DataFrame, covariates: List[str]) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """
    Turns formula covariates into numeric balance terms.

    Numeric 0/1 columns are 'Binary', other numeric columns 'Contin.'.
    Categorical columns become one dummy per level named '<column>_<level>';
    a two-level factor keeps only its second level (e.g. 'married_Other').
    """
    terms = {}
    types = {}

    for cov in covariates:
        if cov not in data.columns:
            raise ValueError(f"Variable '{cov}' not found in data.")
        col = data[cov]

        if is_bool_dtype(col):
            terms[cov] = col.astype(float)
            types[cov] = 'Binary'
        elif is_numeric_dtype(col):
            is_binary = set(col.dropna().unique()) <= {0, 1}
            terms[cov] = col.astype(float)
            types[cov] = 'Binary' if is_binary else 'Contin.'
        else:
            if isinstance(col.dtype, pd.CategoricalDtype):
                levels = list(col.cat.categories)
            else:
                levels = sorted(col.dropna().unique(), key=str)
            if len(levels) == 2:
                levels = levels[1:]
            for level in levels:
                name = f"{cov}_{level}"
                terms[name] = (col == level).astype(float)
                types[name] = 'Binary'

    return pd.DataFrame(terms, index=data.index), types


def covariate_balance(
    terms: pd.DataFrame,
    types: Dict[str, str],
    treatment: pd.Series,
    weights: Optional[pd.Series] = None,
    std_factors: Optional[Dict[str, Optional[float]]] = None
) -> pd.DataFrame:
    """
    Balance statistics of every term for one sample (one set of weights).

    Std. Mean Diff. divides the mean difference by std_factors[term];
    terms with a factor of None report the raw difference (binary terms).
    """
    if weights is None:
        weights = pd.Series(1.0, index=terms.index)
    std_factors = std_factors or {}

    treated_mask = (treatment == 1).to_numpy()
    control_mask = (treatment == 0).to_numpy()
    w = weights.to_numpy(dtype=float)

    rows = []
    for term in terms.columns:
        x = terms[term].to_numpy(dtype=float)
        x_t, w_t = x[treated_mask], w[treated_mask]
        x_c, w_c = x[control_mask], w[control_mask]

        stats_t = compute_weighted_stats(x_t, w_t)
        stats_c = compute_weighted_stats(x_c, w_c)
        mean_diff = stats_t['mean'] - stats_c['mean']

        factor = std_factors.get(term)
        if factor is None:
            smd = mean_diff
        else:
            smd = mean_diff / factor if factor > 0 else np.nan

        if types[term] == 'Binary':
            var_ratio = np.nan
        else:
            var_ratio = stats_t['var'] / stats_c['var'] if stats_c['var'] > 1e-9 else np.nan

        rows.append({
            'Covariate': term,
            'Type': types[term],
            'Means Treated': stats_t['mean'],
            'Means Control': stats_c['mean'],
            'Mean Diff': mean_diff,
            'Std. Mean Diff.': smd,
            'Var Ratio': var_ratio,
            'eCDF Max': weighted_ks(x_t, w_t, x_c, w_c),
        })

    return pd.DataFrame(rows).set_index('Covariate')


def standardization_factors(
    terms: pd.DataFrame,
    types: Dict[str, str],
    treatment: pd.Series,
    estimand: str = "ATT"
) -> Dict[str, Optional[float]]:
    """
    Standard deviations from the ORIGINAL (unweighted) sample.
    Binary terms are not standardized.
    """
    treated = terms[treatment == 1]
    control = terms[treatment == 0]

    factors = {}
    for term in terms.columns:
        if types[term] == 'Binary':
            factors[term] = None
        elif estimand == "ATE":
            factors[term] = np.sqrt((treated[term].var() + control[term].var()) / 2)
        else:
            factors[term] = treated[term].std()
    return factors


def create_summary_table(
    original_data: pd.DataFrame,
    covariates: List[str],
    treatment_col: str,
    weights: pd.Series,
    estimand: str = "ATT",
    distance: Optional[pd.Series] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Generates the unmatched and matched balance tables ('summary(out)').

    If a distance (propensity score) is given it is reported as the first term.
    """
    terms, types = expand_covariates(original_data, covariates)
    if distance is not None:
        terms.insert(0, 'distance', distance.reindex(original_data.index).astype(float))
        types['distance'] = 'Distance'

    treatment = original_data[treatment_col]
    std_factors = standardization_factors(terms, types, treatment, estimand)

    unmatched = covariate_balance(terms, types, treatment, weights=None, std_factors=std_factors)

    weights_aligned = weights.reindex(original_data.index).fillna(0)
    matched = covariate_balance(terms, types, treatment, weights=weights_aligned, std_factors=std_factors)

    return unmatched, matched


def bal_tab(unmatched: pd.DataFrame, matched: pd.DataFrame) -> pd.DataFrame:
    """
    Combines the two summary tables into one row per term:
    Type, Diff.Un, Diff.Adj, KS.Un, KS.Adj.
    """
    table = pd.DataFrame({
        'Type': unmatched['Type'],
        'Diff.Un': unmatched['Std. Mean Diff.'],
        'Diff.Adj': matched['Std. Mean Diff.'].reindex(unmatched.index),
        'KS.Un': unmatched['eCDF Max'],
        'KS.Adj': matched['eCDF Max'].reindex(unmatched.index),
    })
    table.index.name = 'Covariate'
    return table


def check_balance_table(table: pd.DataFrame, terms: List[str]) -> pd.DataFrame:
    """
    Ensures the table holds exactly one row per term with every statistic populated.
    """
    missing_cols = [c for c in BALANCE_COLUMNS if c not in table.columns]
    if missing_cols:
        raise ValueError(f"Balance table is missing columns: {missing_cols}")

    if table.index.has_duplicates:
        dupes = sorted(set(table.index[table.index.duplicated()]))
        raise ValueError(f"Balance table has duplicate rows: {dupes}")

    expected, found = set(terms), set(table.index)
    if expected != found:
        raise ValueError(
            f"Balance table rows do not match the covariates. "
            f"Missing: {sorted(expected - found)}; unexpected: {sorted(found - expected)}"
        )

    stats = table[BALANCE_COLUMNS[1:]]
    if stats.isnull().any().any():
        empty = stats.index[stats.isnull().any(axis=1)].tolist()
        raise ValueError(f"Balance table has empty cells for: {empty}")

    return table

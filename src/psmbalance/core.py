# File: src/psmbalance/core.py

import warnings

import pandas as pd
import patsy
from typing import Dict, List, Optional, Tuple

from .distance import estimate_distance
from .matchers import BaseMatcher, NullMatcher, NearestNeighborMatcher, FullMatcher
from .diagnostics import create_summary_table, bal_tab, expand_covariates
from .plotting import love_plot, bal_plot


def parse_formula(formula: str) -> Tuple[str, List[str]]:
    """
    Splits 'treat ~ a + b' into ('treat', ['a', 'b']).
    """
    if "~" not in formula:
        raise ValueError("Formula must contain '~' separating treatment and covariates.")

    lhs, rhs = formula.split("~", 1)
    treatment = lhs.strip()
    covariates = [x.strip() for x in rhs.split("+") if x.strip()]

    if not treatment or not covariates:
        raise ValueError(f"Formula '{formula}' needs a treatment and at least one covariate.")
    return treatment, covariates


def check_same_formula(*formulas: str) -> Tuple[str, List[str]]:
    """
    Verifies that every formula has the same treatment and the same covariate set.
    """
    if not formulas:
        raise ValueError("No formula given.")

    treatment, covariates = parse_formula(formulas[0])
    for other in formulas[1:]:
        other_treatment, other_covariates = parse_formula(other)
        if other_treatment != treatment or set(other_covariates) != set(covariates):
            raise ValueError(f"Formulas differ: '{formulas[0]}' vs '{other}'.")
    return treatment, covariates


class MatchIt:
    """
    MatchIt-style preprocessing: estimate a propensity score, then match.

    method=None fits the propensity model only and keeps every unit with
    weight 1, which gives the unmatched reference for balance checks.

    Formula covariates must be plain column names (categorical columns are
    expanded by patsy); transformed terms such as C(x) or I(x**2) are rejected.
    Both matchers are deterministic; random_state is stored but not used.
    """

    METHODS = (None, "nearest", "full")

    def __init__(
        self,
        data: pd.DataFrame,
        method: Optional[str] = "nearest",
        distance: str = "glm",
        link: str = "logit",
        replace: bool = False,
        caliper: Optional[float] = None,
        ratio: int = 1,
        estimand: str = "ATT",
        discard: str = "none",
        random_state: Optional[int] = None
    ):
        self.data = data.copy()
        self.method = method
        self.distance = distance
        self.link = link
        self.replace = replace
        self.caliper = caliper
        self.ratio = ratio
        self.estimand = estimand
        self.discard = discard
        self.random_state = random_state

        # Storage for results
        self.formula = None
        self.covariates = None
        self.propensity_scores = None
        self.distance_measure = None
        self.matched_data = None
        self.matched_indices = None
        self.weights = None
        self.subclass = None
        self._treatment_col = None

        self._mask_kept = None

    def __repr__(self):
        method = "none" if self.method is None else self.method
        status = "fitted" if self.weights is not None else "not fitted"
        return f"MatchIt(method={method}, distance={self.distance}, link={self.link}, {status})"

    @property
    def treatment_col(self) -> Optional[str]:
        return self._treatment_col

    def fit(self, formula: str):
        self.formula = formula

        self._validate_inputs(formula)

        self.propensity_scores, self.distance_measure = estimate_distance(
            data=self.data,
            formula=formula,
            method=self.distance,
            link=self.link
        )
        self.data['propensity_score'] = self.propensity_scores
        self.data['distance_measure'] = self.distance_measure

        if self.discard != "none":
            self._apply_discard_logic()
        else:
            self._mask_kept = pd.Series(True, index=self.data.index)

        self._match()
        return self

    def _validate_inputs(self, formula: str):
        """
        Performs rigorous checks on the input data and formula.
        """
        if self.method not in self.METHODS:
            raise NotImplementedError(f"Method {self.method} not supported. Use one of {self.METHODS}.")

        if self.estimand not in ("ATT", "ATE"):
            raise ValueError(f"Estimand '{self.estimand}' not recognized. Use 'ATT' or 'ATE'.")

        # Matching maps treated<->control through the index
        if not self.data.index.is_unique:
            raise ValueError("Input DataFrame index must be unique. Try running `df.reset_index(drop=True)` before passing it to MatchIt.")

        lhs, covariates = parse_formula(formula)
        rhs = formula.split("~", 1)[1]

        if lhs not in self.data.columns:
            raise ValueError(f"Treatment variable '{lhs}' not found in dataframe.")
        self._treatment_col = lhs

        if self.data[lhs].isnull().any():
            raise ValueError(f"Treatment variable '{lhs}' contains missing values (NaN). Please drop or impute them.")

        # Integers 0/1, floats 0.0/1.0 or booleans
        t_vals = self.data[lhs].unique()
        if not all(v in {0, 1} for v in t_vals):
            raise ValueError(f"Treatment variable must be binary (0 and 1). Found values: {t_vals}")

        if self.data[lhs].nunique() < 2:
            raise ValueError(f"Treatment variable '{lhs}' needs both treated and control units.")

        missing = [c for c in covariates if c not in self.data.columns]
        if missing:
            raise ValueError(f"Covariates not found in dataframe: {missing}. Use plain column names, not transformed terms.")
        self.covariates = covariates

        # Only the columns involved in the model are checked for NaNs
        try:
            patsy.dmatrix(rhs, self.data, NA_action='raise', return_type='dataframe')
        except patsy.PatsyError as e:
            if "missing values" in str(e).lower():
                raise ValueError("Covariates contain missing values (NaN). Complete data is required; drop missing rows or impute data.") from e
            raise ValueError(f"Error parsing formula or data: {str(e)}") from e

    def _apply_discard_logic(self):
        treat_mask = (self.data[self._treatment_col] == 1)
        control_mask = (self.data[self._treatment_col] == 0)

        scores = self.propensity_scores

        t_min, t_max = scores[treat_mask].min(), scores[treat_mask].max()
        c_min, c_max = scores[control_mask].min(), scores[control_mask].max()

        keep_mask = pd.Series(True, index=self.data.index)

        if self.discard == "treated":
            cond_discard = treat_mask & ((scores < c_min) | (scores > c_max))
        elif self.discard == "control":
            cond_discard = control_mask & ((scores < t_min) | (scores > t_max))
        elif self.discard == "both":
            common_min = max(t_min, c_min)
            common_max = min(t_max, c_max)
            cond_discard = (scores < common_min) | (scores > common_max)
        else:
            raise ValueError(f"Discard option '{self.discard}' not recognized.")

        keep_mask[cond_discard] = False

        n_dropped = (~keep_mask).sum()
        if n_dropped > 0:
            print(f"Discarding {n_dropped} units outside common support ({self.discard}).")
        self._mask_kept = keep_mask

    def _get_matcher(self) -> BaseMatcher:
        if self.method is None:
            return NullMatcher(random_state=self.random_state)
        elif self.method == 'nearest':
            return NearestNeighborMatcher(
                ratio=self.ratio,
                replace=self.replace,
                caliper=self.caliper,
                random_state=self.random_state
            )
        elif self.method == 'full':
            return FullMatcher(random_state=self.random_state)
        else:
            raise NotImplementedError(f"Method {self.method} not supported yet.")

    def _match(self):
        if self.method is None:
            print("No matching performed; all units kept with weight 1.")
        else:
            print(f"Performing {self.method} matching ({self.estimand})...")

        matcher = self._get_matcher()

        active_treat = self.data.loc[self._mask_kept, self._treatment_col]
        active_dist = self.distance_measure[self._mask_kept]

        matches, sub_weights = matcher.match(
            treatment=active_treat,
            distance_measure=active_dist,
            estimand=self.estimand
        )

        self.matched_indices = matches

        # Reassemble weights for the full dataset; discarded units get 0
        full_weights = pd.Series(0.0, index=self.data.index)
        full_weights.update(sub_weights)
        self.weights = full_weights
        self.data['weights'] = self.weights

        if matcher.subclasses_ is not None:
            self.subclass = matcher.subclasses_.reindex(self.data.index)
            self.data['subclass'] = self.subclass

        self.matched_data = self.data[self.data['weights'] > 0].copy()

        n_matched = len(self.matched_data)
        print(f"Matching complete. {n_matched} observations in matched set.")

        if n_matched == 0:
            warnings.warn(
                f"No matches were found! This often happens with '{self.method}' matching "
                "when a strict caliper or discard rule excludes all units."
            )

    def _check_fitted(self):
        if self.weights is None:
            raise ValueError("You must run .fit() first.")

    def balance_terms(self, include_distance: bool = True) -> List[str]:
        """
        Names of the rows reported by summary() and bal_tab().
        """
        self._check_fitted()
        terms, _ = expand_covariates(self.data, self.covariates)
        names = list(terms.columns)
        return (['distance'] + names) if include_distance else names

    def summary(self, print_output: bool = True) -> Dict[str, pd.DataFrame]:
        self._check_fitted()

        unmatched, matched = create_summary_table(
            original_data=self.data,
            covariates=self.covariates,
            treatment_col=self._treatment_col,
            weights=self.weights,
            estimand=self.estimand,
            distance=self.propensity_scores
        )

        if print_output:
            cols = ['Means Treated', 'Means Control', 'Std. Mean Diff.', 'Var Ratio', 'eCDF Max']
            print("\nSummary of Balance for All Data:")
            print(unmatched[cols])
            if self.method is not None:
                print("\nSummary of Balance for Matched Data:")
                print(matched[cols])

        return {'unmatched': unmatched, 'matched': matched}

    def bal_tab(self, include_distance: bool = True) -> pd.DataFrame:
        """
        One row per balance term with mean differences and KS statistics
        before (Un) and after (Adj) matching.
        """
        summary_stats = self.summary(print_output=False)
        table = bal_tab(summary_stats['unmatched'], summary_stats['matched'])
        if not include_distance:
            table = table.drop(index='distance')
        return table

    def plot(self, type: str = "balance", variable: Optional[str] = None, threshold: float = 0.1, var_names: Optional[dict] = None, colors: tuple = ("#FDB515", "#003262")):
        self._check_fitted()

        if type == "balance":
            return love_plot(self.bal_tab(), stat="mean.diffs", threshold=threshold, var_names=var_names, colors=colors)
        elif type == "distribution":
            if variable is None:
                raise ValueError("You must specify 'variable=' for distribution plots.")
            return bal_plot(self, variable)
        else:
            raise NotImplementedError(f"Plot type '{type}' not supported. Try 'balance' or 'distribution'.")

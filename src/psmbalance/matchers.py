# File: src/psmbalance/matchers.py

import numpy as np
import pandas as pd
from collections import Counter
from sklearn.neighbors import NearestNeighbors
from typing import Dict, List, Optional, Tuple
from abc import ABC, abstractmethod


class BaseMatcher(ABC):
    """
    Abstract Base Class for all matching algorithms.
    Enforces a consistent interface for the MatchIt core.
    """

    def __init__(self, ratio: int = 1, replace: bool = False, random_state: Optional[int] = None):
        self.ratio = ratio
        self.replace = replace
        self.random_state = random_state
        self.subclasses_ = None

    @abstractmethod
    def match(self,
              treatment: pd.Series,
              distance_measure: pd.Series,
              **kwargs
              ) -> Tuple[Dict[int, List[int]], pd.Series]:
        """
        Execute the matching logic.

        Must return:
            matches: Dict[Treated_Index, List[Control_Indices]]
            weights: pd.Series (aligned to the treatment index)
        """

    def _build_result(self, matches: Dict[int, List[int]], all_indices: pd.Index) -> Tuple[Dict, pd.Series]:
        """
        Weights for pair matching: treated units get 1, controls the number of times they were used.
        """
        control_counts = Counter()
        for c_list in matches.values():
            control_counts.update(c_list)

        weights = pd.Series(0.0, index=all_indices)
        weights.loc[list(matches.keys())] = 1.0
        for c_idx, count in control_counts.items():
            weights.loc[c_idx] = count

        return matches, weights

    @staticmethod
    def _weights_from_subclass(subclass: pd.Series, treatment: pd.Series, estimand: str = "ATT") -> pd.Series:
        """
        Stratification weights. Units with a missing subclass get weight 0.

        ATT: treated = 1, control = n_treated / n_control within the subclass,
             controls then rescaled to sum to the number of matched controls.
        ATE: every unit = n_subclass / n_group within the subclass,
             each group rescaled to sum to its matched size.
        """
        weights = pd.Series(0.0, index=treatment.index)
        in_sub = subclass.notna()

        frame = pd.DataFrame({"s": subclass[in_sub], "t": treatment[in_sub]})
        n_t = frame.groupby("s")["t"].transform("sum")
        n_all = frame.groupby("s")["t"].transform("size")
        n_c = n_all - n_t
        is_t = frame["t"] == 1

        if estimand == "ATT":
            w = np.where(is_t, 1.0, n_t / n_c)
        elif estimand == "ATE":
            w = np.where(is_t, n_all / n_t, n_all / n_c)
        else:
            raise ValueError(f"Estimand '{estimand}' not recognized. Use 'ATT' or 'ATE'.")

        w = pd.Series(w, index=frame.index)
        groups = [~is_t] if estimand == "ATT" else [is_t, ~is_t]
        for g in groups:
            total = w[g].sum()
            if total > 0:
                w[g] = w[g] * g.sum() / total

        weights.loc[w.index] = w
        return weights


class NullMatcher(BaseMatcher):
    """
    No matching. Every unit is kept with weight 1; used as the 'before' reference.
    """

    def match(self,
              treatment: pd.Series,
              distance_measure: pd.Series,
              **kwargs
              ) -> Tuple[Dict[int, List[int]], pd.Series]:
        return {}, pd.Series(1.0, index=treatment.index)


class NearestNeighborMatcher(BaseMatcher):
    """
    Implements Nearest Neighbor matching (Greedy).
    """

    def __init__(self, ratio: int = 1, replace: bool = False, caliper: Optional[float] = None, random_state: Optional[int] = None):
        super().__init__(ratio=ratio, replace=replace, random_state=random_state)
        self.caliper = caliper

    def match(self,
              treatment: pd.Series,
              distance_measure: pd.Series,
              **kwargs
              ) -> Tuple[Dict[int, List[int]], pd.Series]:

        treated_mask = treatment == 1
        control_mask = treatment == 0

        treated_indices = treatment[treated_mask].index.to_numpy()
        control_indices = treatment[control_mask].index.to_numpy()

        X_treated = distance_measure[treated_mask].values.reshape(-1, 1)
        X_control = distance_measure[control_mask].values.reshape(-1, 1)

        # Caliper is expressed in standard deviations of the distance measure
        threshold = np.inf
        if self.caliper is not None:
            threshold = self.caliper * distance_measure.std()

        if self.replace:
            matches = self._match_with_replacement(X_treated, X_control, treated_indices, control_indices, threshold)
        else:
            matches = self._match_without_replacement(X_treated, X_control, treated_indices, control_indices, threshold)

        return self._build_result(matches, treatment.index)

    def _match_with_replacement(self, X_treated, X_control, treated_indices, control_indices, threshold):
        """
        Vectorized k-nearest-neighbour lookup; controls may be reused.
        """
        nn = NearestNeighbors(n_neighbors=min(len(X_control), self.ratio), metric='euclidean')
        nn.fit(X_control)
        dists, neighbor_indices = nn.kneighbors(X_treated)

        matches = {}
        for i, t_idx in enumerate(treated_indices):
            valid = [control_indices[c] for d, c in zip(dists[i], neighbor_indices[i]) if d <= threshold]
            if valid:
                matches[t_idx] = valid

        return matches

    def _match_without_replacement(self, X_treated, X_control, treated_indices, control_indices, threshold):
        """
        Greedy loop, treated units with the largest distance first.
        """
        sort_order = np.argsort(X_treated.flatten(), kind="stable")[::-1]
        available_control = set(range(len(X_control)))

        # Every control is a candidate so later treated units still find unused ones
        nn = NearestNeighbors(n_neighbors=len(X_control), metric='euclidean')
        nn.fit(X_control)
        all_dists, all_neighbors = nn.kneighbors(X_treated)

        matches = {}
        for i in sort_order:
            found = []
            for dist, c_internal_idx in zip(all_dists[i], all_neighbors[i]):
                if len(found) >= self.ratio:
                    break
                if dist > threshold:
                    continue
                if c_internal_idx in available_control:
                    found.append(control_indices[c_internal_idx])
                    available_control.remove(c_internal_idx)

            # Partial matches are kept
            if found:
                matches[treated_indices[i]] = found

        return matches


class FullMatcher(BaseMatcher):
    """
    Greedy full matching.

    Every unit ends up in a subclass made of either one treated unit and
    one or more controls, or one control and one or more treated units.
    No unit is discarded.
    """

    def match(self,
              treatment: pd.Series,
              distance_measure: pd.Series,
              estimand: str = "ATT",
              **kwargs
              ) -> Tuple[Dict[int, List[int]], pd.Series]:

        treated_mask = (treatment == 1).to_numpy()
        treated_indices = treatment.index[treated_mask]
        control_indices = treatment.index[~treated_mask]

        if len(treated_indices) == 0 or len(control_indices) == 0:
            raise ValueError("Full matching needs at least one treated and one control unit.")

        X_treated = distance_measure.loc[treated_indices].values.reshape(-1, 1)
        X_control = distance_measure.loc[control_indices].values.reshape(-1, 1)

        # 1. Each control joins the subclass seeded by its nearest treated unit
        _, nearest_treated = NearestNeighbors(n_neighbors=1).fit(X_treated).kneighbors(X_control)
        control_sub = nearest_treated[:, 0].copy()
        treated_sub = np.arange(len(treated_indices))
        n_controls = np.bincount(control_sub, minlength=len(treated_indices))

        # 2. Treated units still without controls: take the nearest control if its
        #    subclass can spare one, otherwise join that control's subclass
        _, nearest_control = NearestNeighbors(n_neighbors=1).fit(X_control).kneighbors(X_treated)
        for i in np.argsort(X_treated.flatten(), kind="stable")[::-1]:
            if n_controls[treated_sub[i]] > 0:
                continue
            j = nearest_control[i, 0]
            donor = control_sub[j]
            if n_controls[donor] > 1:
                n_controls[donor] -= 1
                control_sub[j] = treated_sub[i]
                n_controls[treated_sub[i]] += 1
            else:
                treated_sub[i] = donor

        # Renumber subclasses 1..k in order of first appearance
        raw = pd.Series(np.empty(len(treatment), dtype=int), index=treatment.index)
        raw.loc[treated_indices] = treated_sub
        raw.loc[control_indices] = control_sub
        codes = {s: k + 1 for k, s in enumerate(pd.unique(raw.to_numpy()))}
        subclass = raw.map(codes)
        self.subclasses_ = subclass

        matches = {}
        for _, members in subclass.groupby(subclass):
            t_in = [idx for idx in members.index if treatment.loc[idx] == 1]
            c_in = [idx for idx in members.index if treatment.loc[idx] == 0]
            for t_idx in t_in:
                matches[t_idx] = c_in

        weights = self._weights_from_subclass(subclass, treatment, estimand)
        return matches, weights

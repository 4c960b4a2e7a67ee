# File: src/psmbalance/plotting.py

import math

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from pandas.api.types import is_numeric_dtype
from typing import Dict, List, Optional, Sequence, Tuple

from .config import (
    SAMPLE_NAMES, GROUP_LABELS, GROUP_COLORS, SAMPLE_COLORS, FONT_SIZE, TITLE_SIZE,
    MEAN_DIFF_THRESHOLD, KS_THRESHOLD, VAR_NAMES, DISTRIBUTION_PANELS,
    DISTRIBUTION_TITLE, LOVE_PLOTS_TITLE,
)

# stat -> (unmatched column, matched column, axis label)
LOVE_STATS = {
    "mean.diffs": ("Diff.Un", "Diff.Adj", "Standardized Mean Differences"),
    "ks.statistics": ("KS.Un", "KS.Adj", "Kolmogorov-Smirnov Statistics"),
}

WHICH_SAMPLES = {"both": (0, 1), "unadjusted": (0,), "adjusted": (1,)}


def _is_categorical(x: pd.Series) -> bool:
    return not is_numeric_dtype(x) or set(x.dropna().unique()) <= {0, 1}


def _levels(x: pd.Series) -> list:
    if isinstance(x.dtype, pd.CategoricalDtype):
        return list(x.cat.categories)
    return sorted(x.dropna().unique(), key=str)


def _draw_densities(ax, x: pd.Series, treat: pd.Series, weights: np.ndarray, group_labels, colors):
    for group in (0, 1):
        mask = ((treat == group).to_numpy()) & (weights > 0)
        sns.kdeplot(
            x=x.to_numpy()[mask].astype(float), weights=weights[mask], ax=ax,
            color=colors[group], fill=True, alpha=0.4, linewidth=1, label=group_labels[group]
        )
    ax.set_ylabel("Density", fontsize=FONT_SIZE)


def _draw_proportions(ax, x: pd.Series, treat: pd.Series, weights: np.ndarray, group_labels, colors):
    levels = _levels(x)
    pos = np.arange(len(levels))
    width = 0.4
    values = x.to_numpy()

    for group in (0, 1):
        in_group = (treat == group).to_numpy()
        total = weights[in_group].sum()
        props = [weights[in_group & (values == lev)].sum() / total if total > 0 else np.nan for lev in levels]
        offset = (group - 0.5) * width
        ax.bar(pos + offset, props, width=width, color=colors[group], alpha=0.8,
               edgecolor="white", label=group_labels[group])

    ax.set_xticks(pos)
    ax.set_xticklabels([str(lev) for lev in levels])
    ax.set_ylabel("Proportion", fontsize=FONT_SIZE)


def bal_plot(
    model,
    variable: str,
    which: str = "both",
    sample_names: Sequence[str] = SAMPLE_NAMES,
    group_labels: Sequence[str] = GROUP_LABELS,
    colors: Sequence[str] = GROUP_COLORS,
    title: Optional[str] = None,
    xlabel: Optional[str] = None,
    fig=None
):
    """
    Distribution of one covariate in the treated and control groups,
    one panel per sample (Unmatched: all units unweighted, Matched: matching weights).

    Continuous variables are drawn as weighted densities, categorical and
    binary variables as weighted proportions.

    Args:
        model: A fitted MatchIt object.
        variable (str): Column of model.data to plot.
        which (str): 'both', 'unadjusted' or 'adjusted'.
        fig: Figure or SubFigure to draw into. A new figure is created if None.

    Returns:
        The figure (or subfigure) holding the panels.
    """
    if model.weights is None:
        raise ValueError("Run .fit() before plotting.")
    if variable not in model.data.columns:
        raise ValueError(f"Variable '{variable}' not found in data.")
    if which not in WHICH_SAMPLES:
        raise ValueError(f"which='{which}' not recognized. Use one of {sorted(WHICH_SAMPLES)}.")

    samples = WHICH_SAMPLES[which]
    if fig is None:
        fig = plt.figure(figsize=(5 * len(samples), 4), layout="constrained")
    axes = fig.subplots(1, len(samples), sharey=True, squeeze=False)[0]

    data = model.data
    x = data[variable]
    treat = data[model.treatment_col]
    draw = _draw_proportions if _is_categorical(x) else _draw_densities

    for ax, sample in zip(axes, samples):
        if sample == 0:
            weights = np.ones(len(data))
        else:
            weights = model.weights.reindex(data.index).fillna(0).to_numpy(dtype=float)

        draw(ax, x, treat, weights, group_labels, colors)

        ax.set_title(sample_names[sample], fontsize=FONT_SIZE)
        ax.set_xlabel(xlabel or variable, fontsize=FONT_SIZE)
        plt.setp(ax.get_xticklabels(), rotation=45, ha="right", fontsize=FONT_SIZE)
        if ax is not axes[0]:
            ax.set_ylabel("")

    axes[-1].legend(title="Treatment", fontsize=FONT_SIZE, title_fontsize=FONT_SIZE,
                    loc="upper left", bbox_to_anchor=(1.02, 1), frameon=False)
    fig.suptitle(title or variable, fontsize=FONT_SIZE)
    return fig


def love_plot(
    table: pd.DataFrame,
    stat: str = "mean.diffs",
    var_names: Optional[Dict[str, str]] = None,
    drop_distance: bool = True,
    var_order: Optional[str] = "unadjusted",
    absolute: bool = True,
    line: bool = True,
    stars: Optional[str] = "raw",
    threshold: Optional[float] = None,
    sample_names: Sequence[str] = SAMPLE_NAMES,
    colors: Sequence[str] = SAMPLE_COLORS,
    title: Optional[str] = None,
    ax=None,
    legend: Optional[str] = "right"
):
    """
    Love plot: one balance statistic per covariate, before and after matching.

    Args:
        table (pd.DataFrame): Output of bal_tab().
        stat (str): 'mean.diffs' or 'ks.statistics'.
        var_names (dict): Display names, e.g. {'age': 'Age (Years)'}.
        var_order (str): 'unadjusted' or 'adjusted' sorts terms by that sample
                         (largest at the top); None keeps the table order.
        stars (str): 'raw' appends '*' to terms whose mean difference is unstandardized.
        threshold (float): Draws a dashed reference line.
        legend (str): 'right', 'bottom' or None.

    Returns:
        The matplotlib Axes.
    """
    if stat not in LOVE_STATS:
        raise NotImplementedError(f"Statistic '{stat}' not supported. Use one of {sorted(LOVE_STATS)}.")
    un_col, adj_col, axis_label = LOVE_STATS[stat]

    df = table.drop(index="distance", errors="ignore") if drop_distance else table.copy()
    values = df[[un_col, adj_col]].astype(float)
    values.columns = list(sample_names)
    if absolute:
        values = values.abs()

    if var_order == "unadjusted":
        values = values.sort_values(by=sample_names[0], ascending=True)
    elif var_order == "adjusted":
        values = values.sort_values(by=sample_names[1], ascending=True)
    elif var_order is None:
        values = values.iloc[::-1]
    else:
        raise ValueError(f"var_order='{var_order}' not recognized.")

    starred = stat == "mean.diffs" and stars == "raw"
    labels = []
    for term in values.index:
        label = (var_names or {}).get(term, term)
        if starred and df.loc[term, "Type"] == "Binary":
            label += "*"
        labels.append(label)

    if ax is None:
        _, ax = plt.subplots(figsize=(8, len(values) * 0.5 + 2), layout="constrained")

    y_pos = np.arange(len(values))
    color_unmatched, color_matched = colors

    if line:
        ax.plot(values[sample_names[0]], y_pos, color=color_unmatched, linewidth=1, zorder=2)
        ax.plot(values[sample_names[1]], y_pos, color=color_matched, linewidth=1, zorder=2)

    # Unmatched: filled circle, Matched: hollow circle
    ax.scatter(values[sample_names[0]], y_pos, s=60, color=color_unmatched,
               edgecolors=color_unmatched, label=sample_names[0], zorder=3)
    ax.scatter(values[sample_names[1]], y_pos, s=60, facecolors="white",
               edgecolors=color_matched, linewidths=1.5, label=sample_names[1], zorder=3)

    if not absolute:
        ax.axvline(x=0, color="black", linewidth=1, zorder=0)
    if threshold is not None:
        ax.axvline(x=threshold, color="black", linestyle="--", linewidth=1, zorder=0)

    ax.set_yticks(y_pos)
    ax.set_yticklabels(labels, fontsize=FONT_SIZE)
    xlabel = f"Absolute {axis_label}" if absolute else axis_label
    if starred and any(label.endswith("*") for label in labels):
        xlabel += "\n* raw (unstandardized) difference in means"
    ax.set_xlabel(xlabel, fontsize=FONT_SIZE)
    ax.set_title(title if title is not None else "", fontsize=FONT_SIZE)

    if legend == "bottom":
        ax.legend(title="Sample", loc="upper center", bbox_to_anchor=(0.5, -0.2), ncol=2, frameon=False)
    elif legend == "right":
        ax.legend(title="Sample", loc="upper left", bbox_to_anchor=(1.02, 1), frameon=False)

    sns.despine(ax=ax, left=True)
    return ax


def distribution_figure(
    model,
    panels: List[Tuple[str, str, str]] = DISTRIBUTION_PANELS,
    title: str = DISTRIBUTION_TITLE
):
    """
    Before/after distribution plots for several covariates arranged two per row.
    """
    n_rows = math.ceil(len(panels) / 2)
    fig = plt.figure(figsize=(16, 5 * n_rows), layout="constrained")
    subfigs = np.atleast_1d(fig.subfigures(n_rows, 2)).ravel()

    for subfig, (variable, panel_title, xlabel) in zip(subfigs, panels):
        bal_plot(model, variable, which="both", title=panel_title, xlabel=xlabel, fig=subfig)

    fig.suptitle(title, fontsize=TITLE_SIZE)
    return fig


def love_plots_figure(
    table: pd.DataFrame,
    var_names: Optional[Dict[str, str]] = VAR_NAMES,
    title: str = LOVE_PLOTS_TITLE
):
    """
    Mean-difference and KS Love plots side by side; one shared legend at the bottom.
    """
    fig, (ax_md, ax_ks) = plt.subplots(1, 2, figsize=(14, 6), layout="constrained")

    love_plot(table, stat="mean.diffs", var_names=var_names,
              threshold=MEAN_DIFF_THRESHOLD, ax=ax_md, legend="bottom")
    love_plot(table, stat="ks.statistics", var_names=var_names,
              threshold=KS_THRESHOLD, ax=ax_ks, legend=None)

    fig.suptitle(title, fontsize=TITLE_SIZE)
    return fig

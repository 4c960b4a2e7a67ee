# File: src/psmbalance/analysis.py

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns
from typing import Optional

from .config import FORMULA
from .core import MatchIt, check_same_formula
from .datasets import load_lalonde, recode_lalonde, category_counts
from .diagnostics import check_balance_table
from .plotting import distribution_figure, love_plots_figure


def run_analysis(data: Optional[pd.DataFrame] = None, show: bool = True, formula: str = FORMULA,
                 reference_formula: Optional[str] = None) -> dict:
    """
    Full balance analysis on the Lalonde data.

    1. Load (unless data is given) and recode race / marital status.
    2. Fit a no-matching reference model (logit GLM) and a full matching
       model (probit GLM) on the same covariates.
    3. Build the distribution figure and the Love plot figure.

    Returns a dict with the recoded data, both models, the balance table and both figures.
    """
    sns.set_theme(style="whitegrid")

    if data is None:
        print("Loading Lalonde dataset...")
        data = load_lalonde()
    print(f"Data loaded: {data.shape[0]} rows, {data.shape[1]} columns")
    print(data.head())

    df = recode_lalonde(data)
    print(category_counts(df, "race"))
    print(category_counts(df, "married"))

    reference_formula = reference_formula or formula
    check_same_formula(reference_formula, formula)

    no_match = MatchIt(df, method=None, distance="glm").fit(reference_formula)
    print(no_match)

    ps_match = MatchIt(df, method="full", distance="glm", link="probit").fit(formula)
    print(ps_match)
    ps_match.summary()

    table = ps_match.bal_tab()
    check_balance_table(table, ps_match.balance_terms())

    distributions = distribution_figure(ps_match)
    love_plots = love_plots_figure(table)

    if show:
        plt.show()

    return {
        "data": df,
        "no_match": no_match,
        "ps_match": ps_match,
        "balance": table,
        "distribution_figure": distributions,
        "love_plots_figure": love_plots,
    }

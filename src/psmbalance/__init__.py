# File: src/psmbalance/__init__.py

from .core import MatchIt, parse_formula, check_same_formula
from .datasets import load_lalonde, recode_column, recode_lalonde, category_counts
from .diagnostics import bal_tab, check_balance_table
from .plotting import bal_plot, love_plot, distribution_figure, love_plots_figure
from .analysis import run_analysis

__version__ = "0.1.0"

__all__ = [
    "MatchIt",
    "parse_formula",
    "check_same_formula",
    "load_lalonde",
    "recode_column",
    "recode_lalonde",
    "category_counts",
    "bal_tab",
    "check_balance_table",
    "bal_plot",
    "love_plot",
    "distribution_figure",
    "love_plots_figure",
    "run_analysis",
]

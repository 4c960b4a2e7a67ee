# File: src/psmbalance/datasets.py

import pandas as pd
import statsmodels.api as sm
from typing import Dict, Optional

from .config import REQUIRED_COLUMNS, RACE_LABELS, MARRIED_LABELS


def load_lalonde(cache: Optional[bool] = True) -> pd.DataFrame:
    """
    Loads the Lalonde (NSW) job training data shipped with the R MatchIt package.

    The data is fetched once from the Rdatasets mirror and cached locally by
    statsmodels. Columns: treat, age, educ, race, married, nodegree, re74, re75, re78.
    """
    try:
        dataset = sm.datasets.get_rdataset("lalonde", "MatchIt", cache=cache)
    except Exception as e:
        raise RuntimeError(f"Failed to fetch the lalonde dataset: {str(e)}") from e

    df = dataset.data.reset_index(drop=True)

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Lalonde data is missing columns: {missing}")

    return df


def recode_column(series: pd.Series, mapping: Dict) -> pd.Series:
    """
    Maps raw codes to display labels. Every value must have a label.
    """
    if series.isnull().any():
        raise ValueError(f"Column '{series.name}' contains missing values and cannot be recoded.")

    unmapped = sorted({v for v in series.unique() if v not in mapping}, key=str)
    if unmapped:
        raise ValueError(f"Column '{series.name}' has codes without a label: {unmapped}")

    return series.map(mapping)


def recode_lalonde(data: pd.DataFrame) -> pd.DataFrame:
    """
    Returns a copy of the data with readable race and marital status labels.
    """
    df = data.copy()
    df["race"] = recode_column(df["race"], RACE_LABELS)
    df["married"] = recode_column(df["married"], MARRIED_LABELS)
    return df


def category_counts(data: pd.DataFrame, column: str) -> pd.Series:
    if column not in data.columns:
        raise ValueError(f"Variable '{column}' not found in data.")
    return data[column].value_counts().sort_index()

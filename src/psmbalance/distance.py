# File: src/psmbalance/distance.py

import pandas as pd
import statsmodels.formula.api as smf
import statsmodels.api as sm
from typing import Tuple

LINKS = {
    "logit": sm.families.links.Logit,
    "linear.logit": sm.families.links.Logit,
    "probit": sm.families.links.Probit,
}


def estimate_distance(
    data: pd.DataFrame,
    formula: str,
    method: str = "glm",
    link: str = "logit"
) -> Tuple[pd.Series, pd.Series]:
    """
    Estimates propensity scores and the distance measure (linear predictor).

    Args:
        data (pd.DataFrame): The dataset.
        formula (str): R-style formula (e.g., "treat ~ age + educ + race").
        method (str): Estimation method. Only 'glm' is supported.
        link (str): Binomial link function: 'logit', 'linear.logit' or 'probit'.

    Returns:
        Tuple[pd.Series, pd.Series]:
            1. Propensity Scores (fitted probabilities)
            2. Distance Measure (linear predictor, the scale units are matched on)
    """
    if method != "glm":
        raise NotImplementedError(f"Distance method '{method}' not implemented. Use 'glm'.")
    if link not in LINKS:
        raise NotImplementedError(f"Link '{link}' not supported. Use one of {sorted(LINKS)}.")

    family = sm.families.Binomial(link=LINKS[link]())

    try:
        result = smf.glm(formula=formula, data=data, family=family).fit()
    except Exception as e:
        raise RuntimeError(f"Failed to fit Propensity Score model: {str(e)}") from e

    propensity_scores = pd.Series(result.fittedvalues, index=data.index)
    distance_measure = pd.Series(result.predict(which="linear"), index=data.index)

    return propensity_scores, distance_measure

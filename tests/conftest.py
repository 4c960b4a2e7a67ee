# tests/conftest.py

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


def make_lalonde_like(n: int = 240, seed: int = 0) -> pd.DataFrame:
    """
    Raw-coded data shaped like the MatchIt lalonde set (race: black/hispan/white,
    married: 0/1), with treated units younger, less often married and more often Black.
    """
    rng = np.random.default_rng(seed)
    race = rng.choice(["black", "hispan", "white"], size=n, p=[0.4, 0.15, 0.45])
    married = rng.binomial(1, 0.4, size=n)
    age = rng.integers(17, 55, size=n)
    educ = rng.integers(4, 17, size=n)

    lin = -0.5 + 1.2 * (race == "black") - 0.6 * married - 0.03 * (age - 30)
    treat = rng.binomial(1, 1 / (1 + np.exp(-lin)))

    return pd.DataFrame({
        "treat": treat,
        "age": age,
        "educ": educ,
        "race": race,
        "married": married,
        "nodegree": (educ < 12).astype(int),
        "re74": np.round(rng.gamma(1.5, 3000, size=n) * rng.binomial(1, 0.7, size=n), 1),
        "re75": np.round(rng.gamma(1.5, 3000, size=n) * rng.binomial(1, 0.7, size=n), 1),
        "re78": np.round(rng.gamma(2.0, 3000, size=n), 1),
    })


@pytest.fixture
def raw_lalonde():
    return make_lalonde_like()


@pytest.fixture
def lalonde(raw_lalonde):
    from psmbalance.datasets import recode_lalonde
    return recode_lalonde(raw_lalonde)


@pytest.fixture(autouse=True)
def close_figures():
    import matplotlib.pyplot as plt
    yield
    plt.close("all")

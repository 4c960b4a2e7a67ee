# tests/test_datasets.py

import types

import pandas as pd
import pytest

from psmbalance import datasets
from psmbalance.datasets import recode_column, recode_lalonde, category_counts, load_lalonde
from psmbalance.config import RACE_LABELS, MARRIED_LABELS


def test_recode_race_labels():
    raw = pd.Series(["black", "hispan", "white", "black"], name="race")
    assert recode_column(raw, RACE_LABELS).tolist() == ["Black", "Hispanic", "White", "Black"]


def test_recode_married_labels():
    raw = pd.Series([1, 0, 0, 1], name="married")
    assert recode_column(raw, MARRIED_LABELS).tolist() == ["Married", "Other", "Other", "Married"]


def test_unmapped_code_is_an_error():
    raw = pd.Series(["black", "asian", "white"], name="race")
    with pytest.raises(ValueError, match="asian"):
        recode_column(raw, RACE_LABELS)


def test_missing_code_is_an_error():
    raw = pd.Series([1.0, None, 0.0], name="married")
    with pytest.raises(ValueError, match="missing"):
        recode_column(raw, MARRIED_LABELS)


def test_recode_lalonde_returns_copy(raw_lalonde):
    recoded = recode_lalonde(raw_lalonde)

    assert set(recoded["race"]) <= {"Black", "Hispanic", "White"}
    assert set(recoded["married"]) <= {"Married", "Other"}
    # Input untouched, other columns untouched
    assert set(raw_lalonde["race"]) <= {"black", "hispan", "white"}
    pd.testing.assert_series_equal(recoded["age"], raw_lalonde["age"])


def test_recode_lalonde_is_deterministic(raw_lalonde):
    pd.testing.assert_frame_equal(recode_lalonde(raw_lalonde), recode_lalonde(raw_lalonde))


def test_recoding_twice_fails(raw_lalonde):
    with pytest.raises(ValueError, match="without a label"):
        recode_lalonde(recode_lalonde(raw_lalonde))


def test_category_counts(lalonde):
    counts = category_counts(lalonde, "race")
    assert counts.sum() == len(lalonde)
    assert list(counts.index) == sorted(counts.index)

    with pytest.raises(ValueError):
        category_counts(lalonde, "religion")


def test_load_lalonde_uses_rdatasets(monkeypatch, raw_lalonde):
    calls = {}

    def fake_get_rdataset(name, package, cache=True):
        calls["args"] = (name, package, cache)
        frame = raw_lalonde.copy()
        frame.index = [f"NSW{i}" for i in range(len(frame))]
        return types.SimpleNamespace(data=frame)

    monkeypatch.setattr(datasets.sm.datasets, "get_rdataset", fake_get_rdataset)
    df = load_lalonde()

    assert calls["args"] == ("lalonde", "MatchIt", True)
    assert list(df.index) == list(range(len(raw_lalonde)))
    assert df.index.is_unique


def test_load_lalonde_missing_columns(monkeypatch, raw_lalonde):
    monkeypatch.setattr(
        datasets.sm.datasets, "get_rdataset",
        lambda name, package, cache=True: types.SimpleNamespace(data=raw_lalonde.drop(columns=["re75"]))
    )
    with pytest.raises(ValueError, match="re75"):
        load_lalonde()


def test_load_lalonde_fetch_failure(monkeypatch):
    def offline(name, package, cache=True):
        raise OSError("network unreachable")

    monkeypatch.setattr(datasets.sm.datasets, "get_rdataset", offline)
    with pytest.raises(RuntimeError, match="lalonde"):
        load_lalonde()

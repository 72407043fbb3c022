"""Tests for row selectors and derived columns."""
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from trendlab.core import selectors, transforms
from trendlab.core.spec import SelectorSpec, TransformSpec
from trendlab.errors import InvalidSpecificationError


def _make_sample_df() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "carat": [0.3, 1.0, 2.6, np.nan, 2.5],
            "price": [400.0, 4000.0, 16000.0, 900.0, 0.0],
            "cut": ["Fair", "Ideal", "Good", "Ideal", "Fair"],
        },
        index=[10, 11, 12, 13, 14],
    )


def test_selectors_return_boolean_series() -> None:
    df = _make_sample_df()
    for name, params in [
        ("not_null", {"columns": ["carat"]}),
        ("between", {"column": "carat", "lower": 0.5}),
        ("less_than", {"column": "carat", "value": 2.5}),
        ("greater_than", {"column": "price", "value": 500}),
        ("isin", {"column": "cut", "values": ["Ideal"]}),
    ]:
        mask = selectors.selectors_registry[name](df, **params)
        assert isinstance(mask, pd.Series)
        assert mask.index.equals(df.index)
        assert mask.dtype == bool


def test_between_bounds() -> None:
    df = _make_sample_df()
    assert selectors.between(df, "carat", upper=2.5).tolist() == [True, True, False, False, True]
    assert selectors.between(df, "carat", upper=2.5, inclusive="neither").tolist() == [
        True,
        True,
        False,
        False,
        False,
    ]
    assert selectors.less_than(df, "carat", 2.5).tolist() == [True, True, False, False, False]
    with pytest.raises(InvalidSpecificationError):
        selectors.between(df, "carat", inclusive="sometimes")


def test_apply_selectors_keeps_labels() -> None:
    df = _make_sample_df()
    out = selectors.apply_selectors(
        df,
        [
            SelectorSpec(name="not_null", params={"columns": "carat"}),
            SelectorSpec(name="less_than", params={"column": "carat", "value": 2.5}),
        ],
    )
    assert out.index.tolist() == [10, 11]
    assert selectors.apply_selectors(df, []) is df


def test_unknown_selector_and_column() -> None:
    df = _make_sample_df()
    with pytest.raises(InvalidSpecificationError):
        selectors.apply_selectors(df, [SelectorSpec(name="top_k")])
    with pytest.raises(InvalidSpecificationError):
        selectors.apply_selectors(df, [SelectorSpec(name="not_null", params={"columns": ["depth"]})])
    with pytest.raises(InvalidSpecificationError):
        selectors.apply_selectors(df, [SelectorSpec(name="isin", params={"column": "cut"})])
    assert "isin" in selectors.list_selector_types()


def test_log_transforms_mark_out_of_domain_values() -> None:
    df = _make_sample_df()
    lprice = transforms.log2(df, "price")
    assert lprice.loc[11] == pytest.approx(np.log2(4000.0))
    assert np.isnan(lprice.loc[14])
    assert transforms.log10(df, "price").loc[12] == pytest.approx(np.log10(16000.0))
    assert transforms.log(df, "price").loc[10] == pytest.approx(np.log(400.0))
    assert transforms.log_base(df, "price", 4).loc[12] == pytest.approx(np.log(16000.0) / np.log(4))
    with pytest.raises(InvalidSpecificationError):
        transforms.log_base(df, "price", 1)


def test_ratio_and_power() -> None:
    df = pd.DataFrame({"volume": [10.0, 5.0, 3.0], "sales": [2.0, 0.0, np.nan]})
    out = transforms.ratio(df, "volume", "sales")
    assert out.iloc[0] == 5.0
    assert np.isnan(out.iloc[1])
    assert np.isnan(out.iloc[2])
    assert transforms.power(pd.DataFrame({"r": [1.0, -1.0]}), "r").tolist() == [2.0, 0.5]


def test_derive_chains_outputs() -> None:
    df = _make_sample_df()
    out = transforms.derive(
        df,
        [
            TransformSpec(name="log2", output="lprice", params={"column": "price"}),
            TransformSpec(name="log2", output="lcarat", params={"column": "carat"}),
            TransformSpec(name="ratio", output="slope", params={"numerator": "lprice", "denominator": "lcarat"}),
        ],
    )
    assert list(out.columns) == [*df.columns, "lprice", "lcarat", "slope"]
    assert "lprice" not in df.columns
    assert out.loc[10, "slope"] == pytest.approx(np.log2(400.0) / np.log2(0.3))
    with pytest.raises(InvalidSpecificationError):
        transforms.derive(df, [TransformSpec(name="sqrt", output="s", params={"column": "price"})])


def test_overflow_gives_missing_not_infinite() -> None:
    df = pd.DataFrame({"r": [1.0, 2000.0, np.inf]})
    out = transforms.power(df, "r")
    assert out.iloc[0] == 2.0
    assert out.iloc[1:].isna().all()
    big = transforms.ratio(pd.DataFrame({"a": [1e300, 4.0], "b": [1e-300, 2.0]}), "a", "b")
    assert np.isnan(big.iloc[0])
    assert big.iloc[1] == 2.0

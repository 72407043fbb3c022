import numpy as np
import pandas as pd
import pytest

from trendlab.core import transforms
from trendlab.core.spec import ModelSpec
from trendlab.errors import InvalidSpecificationError
from trendlab.stats import grouped

MODEL = ModelSpec(response="y", predictors=["x"])


def _make_groups_df(seed: int = 7) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    frames = []
    for city, slope in [("Tyler", 1.0), ("Austin", -0.5), ("Waco", 2.0)]:
        x = rng.uniform(0, 5, 15)
        y = 3.0 + slope * x + rng.normal(scale=0.2, size=15)
        frames.append(pd.DataFrame({"city": city, "x": x, "y": y}))
    return pd.concat(frames, ignore_index=True)


def test_partition_first_appearance_order():
    df = pd.DataFrame({"city": ["B", "A", "B", "C"], "v": [1, 2, 3, 4]})
    parts = grouped.partition(df, "city")
    assert list(parts) == ["B", "A", "C"]
    assert parts["B"].tolist() == [0, 2]
    assert parts["C"].tolist() == [3]


def test_partition_multiple_columns_and_no_grouping():
    df = pd.DataFrame({"cut": ["Fair", "Good", "Fair"], "color": ["D", "D", "E"], "v": [1, 2, 3]})
    parts = grouped.partition(df, ["cut", "color"])
    assert list(parts) == [("Fair", "D"), ("Good", "D"), ("Fair", "E")]
    everything = grouped.partition(df, None)
    assert list(everything) == [grouped.ALL_ROWS]
    assert everything[grouped.ALL_ROWS].equals(df.index)


def test_fit_groups_keeps_partition_order():
    df = _make_groups_df()
    fits = grouped.fit_groups(df, "city", MODEL)
    assert list(fits.models) == ["Tyler", "Austin", "Waco"]
    assert fits.failures == []
    tables = grouped.summarise_groups(fits)
    assert tables.glance["city"].tolist() == ["Tyler", "Austin", "Waco"]
    assert tables.tidy["city"].tolist() == ["Tyler", "Tyler", "Austin", "Austin", "Waco", "Waco"]
    assert list(tables.augment.columns[:2]) == ["city", "row"]


def test_row_count_invariant_with_missing_values():
    df = _make_groups_df()
    df.loc[[0, 1, 20], "y"] = np.nan
    fits = grouped.fit_groups(df, "city", MODEL)
    augment = grouped.summarise_groups(fits).augment
    counts = augment.groupby("city", sort=False).size().to_dict()
    eligible = df.dropna(subset=["x", "y"]).groupby("city", sort=False).size().to_dict()
    assert counts == eligible
    assert counts["Tyler"] == 13
    assert counts["Austin"] == 14


def test_groups_are_independent():
    df = _make_groups_df()
    before = grouped.fit_groups(df, "city", MODEL)
    changed = df.copy()
    tyler = changed["city"] == "Tyler"
    changed.loc[tyler, "y"] = changed.loc[tyler, "y"] * 10 + 5
    after = grouped.fit_groups(changed, "city", MODEL)
    assert not np.array_equal(before.models["Tyler"].params, after.models["Tyler"].params)
    for city in ["Austin", "Waco"]:
        assert np.array_equal(before.models[city].params, after.models[city].params)
        assert np.array_equal(before.models[city].resid, after.models[city].resid)
        assert np.array_equal(before.models[city].bse, after.models[city].bse)


def test_fit_and_summaries_are_deterministic():
    df = _make_groups_df()
    first = grouped.summarise_groups(grouped.fit_groups(df, "city", MODEL))
    second = grouped.summarise_groups(grouped.fit_groups(df, "city", MODEL))
    pd.testing.assert_frame_equal(first.glance, second.glance, check_exact=True)
    pd.testing.assert_frame_equal(first.tidy, second.tidy, check_exact=True)
    pd.testing.assert_frame_equal(first.augment, second.augment, check_exact=True)


def test_thread_pool_matches_sequential():
    df = _make_groups_df()
    seq = grouped.summarise_groups(grouped.fit_groups(df, "city", MODEL))
    par = grouped.summarise_groups(grouped.fit_groups(df, "city", MODEL, max_workers=4))
    pd.testing.assert_frame_equal(seq.glance, par.glance, check_exact=True)
    pd.testing.assert_frame_equal(seq.augment, par.augment, check_exact=True)


def test_insufficient_group_reported_not_raised():
    df = pd.DataFrame(
        {
            "city": ["Big"] * 10 + ["Solo"],
            "kind": ["x", "y"] * 5 + ["x"],
            "value": [1.0, 2.0, 1.2, 2.1, 0.9, 1.9, 1.1, 2.2, 1.0, 2.0, 5.0],
        }
    )
    model = ModelSpec(response="value", predictors=["kind"])
    fits = grouped.fit_groups(df, "city", model)
    assert list(fits.models) == ["Big"]
    assert fits.failed_groups() == ["Solo"]
    failure = fits.failures[0]
    assert failure.kind == "insufficient_data"
    assert "Solo" not in fits.models

    tables = grouped.summarise_groups(fits)
    assert "Solo" not in tables.glance["city"].tolist()
    assert "Solo" not in tables.augment["city"].tolist()
    assert tables.failures.to_dict(orient="records") == [failure.as_dict()]
    assert tables.failures.iloc[0]["group"] == "Solo"


def test_invalid_group_does_not_abort_others():
    df = _make_groups_df()
    df.loc[df["city"] == "Austin", "x"] = 1.0
    fits = grouped.fit_groups(df, "city", MODEL)
    assert list(fits.models) == ["Tyler", "Waco"]
    assert fits.failures[0].group == "Austin"
    assert fits.failures[0].kind == "invalid_specification"
    assert fits.failures[0].column == "x"


def test_missing_model_column_fails_every_group():
    df = _make_groups_df()
    fits = grouped.fit_groups(df, "city", ModelSpec(response="y", predictors=["carat"]))
    assert fits.models == {}
    assert [f.column for f in fits.failures] == ["carat"] * 3
    tables = grouped.summarise_groups(fits)
    assert tables.glance.empty
    assert "city" in tables.glance.columns


def test_missing_group_column_raises():
    df = _make_groups_df()
    with pytest.raises(InvalidSpecificationError):
        grouped.fit_groups(df, "state", MODEL)


def test_duplicate_index_rejected():
    df = _make_groups_df()
    df.index = [0] * len(df)
    with pytest.raises(InvalidSpecificationError):
        grouped.fit_groups(df, "city", MODEL)


def test_infinite_value_is_excluded_within_its_group():
    df = _make_groups_df()
    first_tyler = df.index[df["city"] == "Tyler"][0]
    df.loc[first_tyler, "y"] = np.inf
    fits = grouped.fit_groups(df, "city", MODEL)
    assert list(fits.models) == ["Tyler", "Austin", "Waco"]
    assert fits.failures == []

    tables = grouped.summarise_groups(fits)
    glance = tables.glance.set_index("city")
    assert glance.loc["Tyler", "n_excluded"] == 1
    assert glance.loc["Tyler", "nobs"] == 14
    assert np.isfinite(glance[["r_squared", "sigma"]].to_numpy()).all()
    assert np.isfinite(tables.tidy["estimate"].to_numpy()).all()
    assert first_tyler not in tables.augment["row"].tolist()
    augment = tables.augment
    assert (augment["fitted"] + augment["resid"]).to_numpy() == pytest.approx(augment["y"].to_numpy())


def test_overflowing_transform_marks_rows_missing():
    df = _make_groups_df()
    df["z"] = df["x"]
    df.loc[[0, 20], "z"] = 2000.0
    df["ez"] = transforms.power(df, "z")
    assert df["ez"].isna().tolist() == [i in (0, 20) for i in df.index]
    fits = grouped.fit_groups(df, "city", ModelSpec(response="ez", predictors=["x"]))
    assert list(fits.models) == ["Tyler", "Austin", "Waco"]
    assert [fits.models[c].n_excluded for c in ["Tyler", "Austin", "Waco"]] == [1, 1, 0]
    for fitted in fits.models.values():
        assert np.isfinite(fitted.params).all()

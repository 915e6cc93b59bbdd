import os

import pandas as pd
import pytest

from analyze_results import (
    NUMERIC_COLS,
    _coerce_numeric_cols,
    _find_summary_csvs,
    _read_csvs,
    apply_filters,
    best_candidates,
)
from experiments import load_scenarios


def _layout(**kw):
    row = {"device_count": 12, "group_count": 2, "spare_count": 2, "row_count": 100,
           "statistic": "mean", "fault_count": 1}
    row.update(kw)
    return row


def _write_summaries(base) -> None:
    (base / "a").mkdir()
    (base / "b").mkdir()
    pd.DataFrame([
        _layout(seed=1, score=2.0),
        _layout(seed=2, score=1.5),
    ]).to_csv(base / "a" / "summary.csv", index=False)
    pd.DataFrame([
        _layout(seed=3, score=1.2, note="retry"),
        _layout(device_count=24, seed=1, score=3.0, note=""),
    ]).to_csv(base / "b" / "summary.csv", index=False)


def test_read_csvs_merges_subdirs_with_source(tmp_path) -> None:
    _write_summaries(tmp_path)
    paths = _find_summary_csvs(str(tmp_path), merge_subdirs=True)
    assert [os.path.basename(os.path.dirname(p)) for p in paths] == ["a", "b"]

    df = _read_csvs(paths)
    assert len(df) == 4
    assert "__source__" in df.columns
    assert set(df["__source__"]) == set(paths)
    assert "note" in df.columns
    assert df["note"].isna().sum() >= 2


def test_best_candidates_picks_lowest_score_per_layout(tmp_path) -> None:
    _write_summaries(tmp_path)
    df = _coerce_numeric_cols(_read_csvs(_find_summary_csvs(str(tmp_path), True)), NUMERIC_COLS)

    best = best_candidates(df)
    assert len(best) == 2

    by_devices = {int(r["device_count"]): r for _, r in best.iterrows()}
    assert int(by_devices[12]["seed"]) == 3
    assert by_devices[12]["score"] == pytest.approx(1.2)
    assert int(by_devices[12]["n_candidates"]) == 3
    assert int(by_devices[24]["n_candidates"]) == 1


def test_apply_filters(tmp_path) -> None:
    _write_summaries(tmp_path)
    df = _coerce_numeric_cols(_read_csvs(_find_summary_csvs(str(tmp_path), True)), NUMERIC_COLS)

    assert len(apply_filters(df, devices=12)) == 3
    assert len(apply_filters(df, devices=12, max_score=1.5)) == 2
    assert len(apply_filters(df, statistic="rms")) == 0
    assert len(apply_filters(df, faults=1)) == 4


def test_missing_base_dir_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        _find_summary_csvs(str(tmp_path / "nope"), merge_subdirs=False)


def test_load_scenarios_list_form(tmp_path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text(
        "- devices: 12\n"
        "  statistic: rms\n"
        "- devices: 24\n"
        "  spares: 4\n"
        "  note: wide\n",
        encoding="utf-8",
    )
    scenarios = load_scenarios(str(path))
    assert scenarios == [
        {"devices": 12, "statistic": "rms"},
        {"devices": 24, "spares": 4, "note": "wide"},
    ]


def test_load_scenarios_mapping_form(tmp_path) -> None:
    path = tmp_path / "mapping.yaml"
    path.write_text(
        "scenarios:\n"
        "  - devices: 10\n"
        "    faults: 2\n"
        "    repeat: 3\n",
        encoding="utf-8",
    )
    assert load_scenarios(str(path)) == [{"devices": 10, "faults": 2, "repeat": 3}]


def test_load_scenarios_rejects_other_shapes(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("devices: 12\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_scenarios(str(path))

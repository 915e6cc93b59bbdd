import argparse
import csv

import pytest

from config import LayoutConfig
from decluster import decluster_report
from experiments import best_by_layout, build_grid
from metrics import append_summary_csv, collect_run_metrics, load_rows, summary_row
from models import DraidMap, InvalidLayout
from run_sim import _quick_qc


def _report():
    dmap = DraidMap(device_count=10, group_count=2, spare_count=2, rows=(tuple(range(10)),) * 2)
    return decluster_report(dmap, "mean", 1)


def test_default_config_prepares() -> None:
    cfg = LayoutConfig()
    cfg.prepare()
    assert cfg.group_size == 5
    assert cfg.data_devices == 10
    assert cfg.effective_row_count == 100
    assert cfg.fault_set_count == 12
    assert "_validated" not in cfg.to_dict()


def test_config_prepare_normalizes_statistic_alias() -> None:
    cfg = LayoutConfig(statistic="max", fault_count=2, expand=True, row_count=10)
    cfg.prepare()
    assert cfg.statistic == "worst"
    assert cfg.effective_row_count == 120
    assert cfg.fault_set_count == 66


def test_config_rejects_bad_values() -> None:
    with pytest.raises(InvalidLayout):
        LayoutConfig(device_count=11, group_count=2, spare_count=2).validate()
    with pytest.raises(ValueError):
        LayoutConfig(statistic="median").validate()
    with pytest.raises(ValueError):
        LayoutConfig(fault_count=3).validate()
    with pytest.raises(ValueError):
        LayoutConfig(row_count=2000, expand=True).validate()


def test_collect_run_metrics_fields() -> None:
    cfg = LayoutConfig(device_count=10, group_count=2, spare_count=2, row_count=2)
    row = collect_run_metrics(_report(), cfg)

    assert row["device_count"] == 10
    assert row["row_count"] == 2
    assert row["statistic"] == "mean"
    assert row["combinations"] == 10
    assert row["score"] == pytest.approx(1.6)
    assert row["worst"] == pytest.approx(2.0)
    assert row["worst_faults"] == "0"
    assert row["max_total"] == 2
    assert row["write_max"] == pytest.approx(2.0)
    assert row["read_min"] == 0.0


def test_summary_row_meta_overrides() -> None:
    row = summary_row(_report(), None, {"seed": 7, "score": "overridden"})
    assert row["seed"] == 7
    assert row["score"] == "overridden"


def test_append_summary_csv_keeps_header_and_extends(tmp_path) -> None:
    path = tmp_path / "out" / "summary.csv"
    append_summary_csv(str(path), _report(), None, {"seed": 1})
    append_summary_csv(str(path), _report(), None, {"seed": 2, "note": "extra"})

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))

    header = rows[0]
    assert header[: len(header) - 1] == sorted(header[: len(header) - 1])
    assert header[-1] == "note"
    assert len(rows) == 3
    assert all(len(r) == len(header) for r in rows)

    with open(path, newline="", encoding="utf-8") as f:
        records = list(csv.DictReader(f))
    assert [r["seed"] for r in records] == ["1", "2"]
    assert [r["note"] for r in records] == ["", "extra"]
    assert records[0]["score"] == records[1]["score"]


def test_load_rows_marks_broken_device() -> None:
    rows = load_rows(_report())
    assert len(rows) == 10
    assert rows[0]["broken"] == 1
    assert rows[8]["writes"] == 2
    assert rows[8]["writes_norm"] == pytest.approx(2.0)
    assert sum(r["broken"] for r in rows) == 1


def test_quick_qc_flags_inconsistent_row() -> None:
    good = summary_row(_report(), None, {"seed": 1})
    assert _quick_qc(good)

    bad = dict(good, rms=0.1, mean=0.5)
    assert not _quick_qc(bad)
    assert not _quick_qc(dict(good, score=float("nan")))


def test_build_grid_cartesian_product() -> None:
    args = argparse.Namespace(grid="devices=10,12; statistic=mean,rms", devices=8, statistic="worst", seed=1)
    grid = build_grid(args)
    assert len(grid) == 4
    assert {(g["devices"], g["statistic"]) for g in grid} == {
        (10, "mean"), (10, "rms"), (12, "mean"), (12, "rms"),
    }
    assert all(g["seed"] == 1 for g in grid)


def test_best_by_layout_picks_lowest_score() -> None:
    base = {"device_count": 12, "group_count": 2, "spare_count": 2, "base_rows": 100,
            "expand": 0, "statistic": "mean", "fault_count": 1}
    runs = [dict(base, seed=1, score=2.0), dict(base, seed=2, score=1.5), dict(base, seed=3, score=1.5),
            dict(base, device_count=24, seed=1, score=3.0)]
    best = best_by_layout(runs)
    assert len(best) == 2
    assert {b["seed"] for b in best if b["device_count"] == 12} == {2}

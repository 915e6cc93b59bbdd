import math
import random

import pytest

from decluster import (
    decluster_report,
    evaluate_decluster,
    fault_set_count,
    fault_sets,
    get_statistic,
    rank_maps,
)
from models import DraidMap, InsufficientSpares, Statistic
from permutation import expand_map, generate_map


def _identity_map():
    return DraidMap(device_count=10, group_count=2, spare_count=2, rows=(tuple(range(10)),))


def test_fault_sets_are_lazy_and_complete() -> None:
    singles = fault_sets(5, 1)
    assert not isinstance(singles, list)
    assert list(singles) == [(0,), (1,), (2,), (3,), (4,)]

    pairs = list(fault_sets(5, 2))
    assert len(pairs) == fault_set_count(5, 2) == 10
    assert all(a < b for a, b in pairs)


def test_unsupported_fault_count_raises() -> None:
    with pytest.raises(ValueError):
        list(fault_sets(5, 3))
    with pytest.raises(ValueError):
        evaluate_decluster(generate_map(12, 2, 4, 5, seed=1), "mean", 3)


def test_get_statistic_names_and_aliases() -> None:
    assert get_statistic("worst") is Statistic.WORST
    assert get_statistic("MAX") is Statistic.WORST
    assert get_statistic("avg") is Statistic.MEAN
    assert get_statistic("rms") is Statistic.RMS
    assert get_statistic(Statistic.MEAN) is Statistic.MEAN
    with pytest.raises(ValueError):
        get_statistic("median")


def test_scores_on_hand_computed_map() -> None:
    # 단일 고장: 8개 group 멤버 -> max_total 1, 2개 spare -> 0
    dmap = _identity_map()
    report = decluster_report(dmap, "mean", 1)

    assert report.combinations == 10
    assert report.worst == pytest.approx(2.0)
    assert report.mean == pytest.approx(0.8 * 2)
    assert report.rms == pytest.approx(math.sqrt(0.8) * 2)
    assert report.score == report.mean
    assert report.worst_faults == (0,)
    assert report.worst_loads is not None
    assert report.worst_loads.max_total == 1

    assert evaluate_decluster(dmap, Statistic.WORST, 1) == pytest.approx(2.0)
    assert evaluate_decluster(dmap, Statistic.RMS, 1) == pytest.approx(report.rms)


def test_rms_is_never_below_mean() -> None:
    for seed in range(4):
        for fault_count in (1, 2):
            dmap = generate_map(10, 2, 2, 30, seed=seed)
            rep = decluster_report(dmap, "rms", fault_count)
            assert rep.rms >= rep.mean - 1e-12
            assert rep.worst >= rep.rms - 1e-12


def test_double_fault_with_single_spare_propagates() -> None:
    dmap = generate_map(9, 2, 1, 10, seed=2)
    with pytest.raises(InsufficientSpares):
        evaluate_decluster(dmap, "worst", 2)


def test_fault_count_above_spares_raises_even_without_combinations() -> None:
    # 디바이스 1개: 2중 고장 조합이 하나도 없지만 spare 용량 부족은 그대로 에러
    tiny = generate_map(1, 1, 0, 5, seed=0)
    with pytest.raises(InsufficientSpares):
        decluster_report(tiny, "mean", 2)
    with pytest.raises(InsufficientSpares):
        decluster_report(tiny, "worst", 1)


def test_end_to_end_default_layout_is_finite_and_reproducible() -> None:
    one = evaluate_decluster(generate_map(12, 2, 2, 100, rng=random.Random(2024)), Statistic.MEAN, 1)
    two = evaluate_decluster(generate_map(12, 2, 2, 100, rng=random.Random(2024)), Statistic.MEAN, 1)

    assert math.isfinite(one)
    assert one >= 0.0
    assert one == two


def test_score_is_row_count_independent_for_repeated_rows() -> None:
    dmap = _identity_map()
    repeated = DraidMap(device_count=10, group_count=2, spare_count=2, rows=dmap.rows * 7)
    assert evaluate_decluster(repeated, "mean", 1) == pytest.approx(evaluate_decluster(dmap, "mean", 1))


def test_expanded_map_spreads_load_evenly() -> None:
    # 모든 cyclic relabeling을 포함하면 단일 고장 부하가 디바이스 라벨에 대해 대칭
    base = generate_map(6, 2, 2, 3, seed=17)
    rep = decluster_report(expand_map(base), "rms", 1)
    assert rep.worst == pytest.approx(rep.mean)
    assert rep.rms == pytest.approx(rep.mean)


def test_rank_maps_orders_best_first() -> None:
    maps = [generate_map(10, 2, 2, 20, seed=s) for s in range(5)]
    ranked = rank_maps(maps, "mean", 1)

    assert sorted(i for _, i in ranked) == list(range(5))
    scores = [s for s, _ in ranked]
    assert scores == sorted(scores)
    assert scores[0] == pytest.approx(evaluate_decluster(maps[ranked[0][1]], "mean", 1))

import random

import pytest

from models import DraidMap, InvalidLayout, is_valid_row
from permutation import build_candidate, expand_map, generate_map, permute_row


class ScriptedRng:
    """randint 값을 미리 정한 순서대로 돌려주는 난수원."""

    def __init__(self, values):
        self._values = list(values)

    def randint(self, a, b):
        return self._values.pop(0)


def test_every_row_is_a_permutation() -> None:
    for n in (2, 3, 5, 12, 31):
        dmap = generate_map(n, 1, 0, 50, seed=n)
        assert dmap.row_count == 50
        for row in dmap.rows:
            assert sorted(row) == list(range(n))


def test_row_zero_is_identity() -> None:
    dmap = generate_map(12, 2, 2, 10, seed=3)
    assert dmap.rows[0] == tuple(range(12))


def test_two_devices_always_swap() -> None:
    dmap = generate_map(2, 1, 0, 20, seed=1)
    for prev, cur in zip(dmap.rows, dmap.rows[1:]):
        assert cur != prev
        assert cur == (prev[1], prev[0])


def test_group_sizes_split_data_devices_evenly() -> None:
    dmap = generate_map(10, 2, 2, 1, seed=0)
    assert dmap.group_sizes == (4, 4)
    assert dmap.group_slices() == [(0, 4), (4, 8)]
    assert dmap.spare_slice() == (8, 10)


def test_same_seed_gives_same_rows() -> None:
    one = generate_map(12, 2, 2, 100, seed=123)
    two = generate_map(12, 2, 2, 100, seed=123)
    assert one.rows == two.rows


def test_injected_rng_is_used() -> None:
    one = generate_map(12, 2, 2, 30, rng=random.Random(7))
    two = generate_map(12, 2, 2, 30, rng=random.Random(7))
    other = generate_map(12, 2, 2, 30, rng=random.Random(8))
    assert one.rows == two.rows
    assert one.rows != other.rows


def test_permute_row_sorts_by_random_key() -> None:
    # 키가 내림차순이면 결과는 뒤집힌 row
    assert permute_row((0, 1, 2), ScriptedRng([30, 20, 10])) == (2, 1, 0)
    # 같은 키는 원래 순서 유지 (stable)
    assert permute_row((4, 5, 6, 7), ScriptedRng([5, 1, 5, 1])) == (5, 7, 4, 6)


def test_scripted_rng_gives_exact_rows() -> None:
    rng = ScriptedRng([2, 1, 0, 0, 2, 1])
    dmap = generate_map(3, 1, 0, 3, rng=rng)
    assert dmap.rows == ((0, 1, 2), (2, 1, 0), (2, 0, 1))


@pytest.mark.parametrize(
    "devices, groups, spares, rows",
    [
        (4, 1, 4, 10),   # device_count == spare_count
        (4, 1, 5, 10),   # device_count < spare_count
        (10, 0, 2, 10),  # group_count == 0
        (10, 3, 2, 10),  # 8 devices not divisible by 3 groups
        (10, 2, -1, 10), # negative spares
        (10, 2, 2, 0),   # no rows
    ],
)
def test_invalid_layouts_are_rejected(devices, groups, spares, rows) -> None:
    with pytest.raises(InvalidLayout):
        generate_map(devices, groups, spares, rows, seed=0)


def test_map_rejects_non_permutation_rows() -> None:
    with pytest.raises(InvalidLayout):
        DraidMap(device_count=3, group_count=1, spare_count=1, rows=((0, 0, 1),))


def test_expand_row_count_and_rotation() -> None:
    base = generate_map(5, 2, 1, 3, seed=11)
    expanded = expand_map(base)

    assert expanded.row_count == base.row_count * base.device_count
    assert (expanded.device_count, expanded.group_count, expanded.spare_count) == (5, 2, 1)
    assert expanded.group_sizes == base.group_sizes

    for r, row in enumerate(base.rows):
        for o in range(5):
            assert expanded.rows[r * 5 + o] == tuple((x + o) % 5 for x in row)


def test_expand_rows_are_permutations_and_base_untouched() -> None:
    base = generate_map(12, 2, 2, 8, seed=5)
    before = base.rows
    expanded = expand_map(base)

    assert base.rows == before
    assert base.row_count == 8
    assert all(is_valid_row(row, 12) for row in expanded.rows)


def test_build_candidate_returns_base_when_expanded() -> None:
    dmap, base = build_candidate(6, 2, 2, 4, seed=9, expand=True)
    assert base is not None
    assert dmap.row_count == 24
    assert dmap.rows[:6] == expand_map(base).rows[:6]

    plain, none = build_candidate(6, 2, 2, 4, seed=9)
    assert none is None
    assert plain.rows == base.rows

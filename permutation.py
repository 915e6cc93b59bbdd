"""
permutation.py

dRAID permutation map을 만드는 모듈 (base map 생성 + cyclic 확장).

핵심 역할
---------
decluster 분석은 결국 “어떤 순열들로 row를 채웠는가”에 의해 결정된다.
- row 0은 항상 identity [0, 1, ..., n-1]
- row i는 row i-1을 무작위로 다시 섞어서 만든다.
- expand_map은 base map의 각 row에 모든 cyclic 디바이스 relabeling(+o mod n)을 적용해
  row 수를 device_count배로 늘린다. 새 난수 없이 평가 대상 레이아웃을 늘리는 방법.

재현성(Contract)
----------------
- 난수원은 호출 측에서 주입한다(rng). random.Random처럼 randint(a, b)를 제공하면 된다.
- rng가 없으면 seed로 random.Random(seed)를 만든다. seed도 None이면 시스템 엔트로피.
- 같은 seed면 항상 같은 rows가 생성된다.

모델링 의도 / 단순화
-------------------
- 디바이스가 2개뿐이면 랜덤 순열은 50% 확률로 identity가 되어
  “이전 row와 같은 row”가 생긴다. 그래서 2개일 때는 무조건 swap한다.
- 그 외에는 디바이스마다 signed 32bit 범위의 정렬 키를 뽑아 stable sort 한다.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple
import random

from models import DraidMap, Row, check_layout


# 정렬 키 범위 (mrand48과 같은 signed 32bit)
ORDER_KEY_MIN = -(1 << 31)
ORDER_KEY_MAX = (1 << 31) - 1


def _make_rng(rng: Optional[Any], seed: Optional[int]) -> Any:
    if rng is not None:
        return rng
    return random.Random(seed)


def permute_row(row: Sequence[int], rng: Any) -> Row:
    """
    이전 row로부터 새 순열을 만든다.

    - len(row) == 2: 두 원소를 swap
    - 그 외: 원소마다 랜덤 정렬 키를 붙여 키 오름차순 stable sort
    """
    if len(row) == 2:
        return (row[1], row[0])

    keys = [rng.randint(ORDER_KEY_MIN, ORDER_KEY_MAX) for _ in row]
    order = sorted(range(len(row)), key=lambda i: keys[i])
    return tuple(row[i] for i in order)


def generate_map(
    device_count: int,
    group_count: int,
    spare_count: int,
    row_count: int,
    rng: Optional[Any] = None,
    seed: Optional[int] = None,
) -> DraidMap:
    """
    base permutation map 생성기.

    Parameters
    ----------
    device_count:
        물리 디바이스 수
    group_count:
        row 당 redundancy group 수. (device_count - spare_count)를 나눠떨어뜨려야 한다.
    spare_count:
        row 끝에 예약하는 spare slot 수
    row_count:
        생성할 row 수
    rng:
        주입 난수원(randint 제공). 주어지면 seed는 무시한다.
    seed:
        rng가 없을 때 random.Random(seed)에 넘길 시드

    Raises
    ------
    InvalidLayout:
        레이아웃 전제조건 위반(models.check_layout 참고)
    """
    check_layout(device_count, group_count, spare_count, row_count)
    rng = _make_rng(rng, seed)

    rows: List[Row] = [tuple(range(device_count))]
    for _ in range(1, row_count):
        rows.append(permute_row(rows[-1], rng))

    return DraidMap(
        device_count=device_count,
        group_count=group_count,
        spare_count=spare_count,
        rows=tuple(rows),
    )


def rotate_row(row: Sequence[int], offset: int, device_count: int) -> Row:
    """디바이스 라벨을 offset만큼 cyclic relabel: x -> (x + offset) mod n."""
    return tuple((x + offset) % device_count for x in row)


def expand_map(base: DraidMap) -> DraidMap:
    """
    base map의 각 row에 모든 cyclic relabeling을 적용한 새 map.

    - 결과 row 수 = base.row_count * base.device_count
    - 결과 row[r * n + o] = rotate_row(base.rows[r], o)
    - device/group/spare 수는 그대로 복사한다. base는 건드리지 않는다.
    """
    n = base.device_count
    rows: List[Row] = []
    for row in base.rows:
        for offset in range(n):
            rows.append(rotate_row(row, offset, n))

    return DraidMap(
        device_count=n,
        group_count=base.group_count,
        spare_count=base.spare_count,
        rows=tuple(rows),
        group_sizes=base.group_sizes,
    )


def build_candidate(
    device_count: int,
    group_count: int,
    spare_count: int,
    row_count: int,
    seed: Optional[int] = None,
    expand: bool = False,
) -> Tuple[DraidMap, Optional[DraidMap]]:
    """
    실행기(run_sim/experiments)가 쓰는 편의 함수.

    Returns
    -------
    (map_to_score, base_map)
    - expand=False: (base, None)
    - expand=True : (expanded, base)
    """
    base = generate_map(device_count, group_count, spare_count, row_count, seed=seed)
    if expand:
        return expand_map(base), base
    return base, None

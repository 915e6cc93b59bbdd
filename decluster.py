"""
decluster.py

Declustering Quality Evaluator 와 통계(statistic) 선택 로직 모음입니다.

이 모듈의 목적
--------------
1) fault 조합 열거
   - fault_count=1: 모든 디바이스 f
   - fault_count=2: 모든 unordered pair (f1 < f2)
   - 조합은 generator로 하나씩 만들어 메모리를 일정하게 유지합니다.
2) 조합별 resilver 시뮬레이션 → max_total 샘플 수집
3) 샘플을 통계 하나로 축약하고 row 수와 무관하게 정규화
   - WORST: 최대값
   - MEAN : 평균
   - RMS  : sqrt(제곱평균)
   - score = raw / row_count * group_count

점수가 낮을수록 resilver I/O가 고르게 퍼진(decluster가 잘 된) map입니다.

주의(Assumptions / Pitfalls)
----------------------------
- fault_count는 1 또는 2만 지원합니다.
- fault_count가 map의 spare_count보다 크면 조합을 돌기 전에 InsufficientSpares를 던집니다.
  (요청한 내고장성과 map의 실제 용량이 맞지 않는다는 뜻)
- RMS >= MEAN 은 항상 성립합니다(Cauchy–Schwarz). WORST >= RMS 도 성립합니다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Iterator, List, Optional, Sequence, Tuple, Union
import math

from models import DraidMap, InsufficientSpares, LoadTable, Statistic
from simulator import ResilverSimulator


SUPPORTED_FAULT_COUNTS = (1, 2)


# ------------------------------------------------------------
# 통계 팩토리(이름 -> Statistic)
# ------------------------------------------------------------

_STATISTIC_ALIASES = {
    "worst": Statistic.WORST,
    "max": Statistic.WORST,
    "mean": Statistic.MEAN,
    "avg": Statistic.MEAN,
    "rms": Statistic.RMS,
}


def get_statistic(name: Union[str, Statistic]) -> Statistic:
    """
    문자열 이름으로 Statistic을 얻습니다.

    CLI/YAML에서는 "worst" | "mean" | "rms" (별칭: max, avg)를 받습니다.
    """
    if isinstance(name, Statistic):
        return name
    n = (name or "").strip().lower()
    if n not in _STATISTIC_ALIASES:
        raise ValueError(f"unknown statistic: {name}")
    return _STATISTIC_ALIASES[n]


def fault_sets(device_count: int, fault_count: int) -> Iterator[Tuple[int, ...]]:
    """fault_count개의 서로 다른 디바이스 조합을 사전순으로 lazily 생성합니다."""
    if fault_count not in SUPPORTED_FAULT_COUNTS:
        raise ValueError(f"fault_count 는 1 또는 2 여야 합니다 (fault_count={fault_count})")
    return combinations(range(device_count), fault_count)


def fault_set_count(device_count: int, fault_count: int) -> int:
    return math.comb(device_count, fault_count)


# ------------------------------------------------------------
# 평가 결과
# ------------------------------------------------------------

@dataclass
class DeclusterResult:
    """
    decluster 평가 1회의 결과.

    - score: 요청한 statistic의 정규화 값
    - worst / mean / rms: 세 통계 모두의 정규화 값 (같은 샘플에서 계산)
    - worst_faults / worst_loads: max_total이 처음으로 최대가 된 조합과 그 부하 테이블
    """
    statistic: Statistic
    fault_count: int
    row_count: int
    group_count: int
    combinations: int = 0
    score: float = 0.0
    worst: float = 0.0
    mean: float = 0.0
    rms: float = 0.0
    worst_faults: Tuple[int, ...] = ()
    worst_loads: Optional[LoadTable] = field(default=None, repr=False)


def _normalize(raw: float, dmap: DraidMap) -> float:
    return (raw / dmap.row_count) * dmap.group_count


def decluster_report(
    dmap: DraidMap,
    statistic: Union[str, Statistic] = Statistic.MEAN,
    fault_count: int = 1,
    sim: Optional[ResilverSimulator] = None,
) -> DeclusterResult:
    """
    모든 fault 조합에 대해 resilver를 시뮬레이션하고 DeclusterResult를 만듭니다.

    sim을 넘기면(예: enable_trace=True) 그 simulator로 조합을 돌립니다.
    """
    stat = get_statistic(statistic)
    combos = fault_sets(dmap.device_count, fault_count)
    if fault_count > dmap.spare_count:
        raise InsufficientSpares(
            f"fault_count {fault_count} > spare_count {dmap.spare_count}: "
            "map의 spare 용량으로 받아낼 수 없는 동시 고장 수입니다"
        )
    sim = sim or ResilverSimulator(dmap)

    total = 0
    total_sq = 0
    max_ios = 0
    count = 0
    worst_faults: Tuple[int, ...] = ()
    worst_loads: Optional[LoadTable] = None

    for faults in combos:
        loads = sim.run(faults)
        ios = loads.max_total
        count += 1
        total += ios
        total_sq += ios * ios
        if worst_loads is None or ios > max_ios:
            max_ios = ios
            worst_faults = faults
            worst_loads = loads

    # device_count > spare_count >= fault_count 이므로 count >= 1
    mean = total / count
    rms = math.sqrt(total_sq / count)
    raw = {Statistic.WORST: float(max_ios), Statistic.MEAN: mean, Statistic.RMS: rms}

    return DeclusterResult(
        statistic=stat,
        fault_count=fault_count,
        row_count=dmap.row_count,
        group_count=dmap.group_count,
        combinations=count,
        score=_normalize(raw[stat], dmap),
        worst=_normalize(raw[Statistic.WORST], dmap),
        mean=_normalize(raw[Statistic.MEAN], dmap),
        rms=_normalize(raw[Statistic.RMS], dmap),
        worst_faults=worst_faults,
        worst_loads=worst_loads,
    )


def evaluate_decluster(
    dmap: DraidMap,
    statistic: Union[str, Statistic] = Statistic.MEAN,
    fault_count: int = 1,
) -> float:
    """후보 map 하나의 decluster score (낮을수록 좋음)."""
    return decluster_report(dmap, statistic, fault_count).score


def rank_maps(
    maps: Sequence[DraidMap],
    statistic: Union[str, Statistic] = Statistic.MEAN,
    fault_count: int = 1,
) -> List[Tuple[float, int]]:
    """
    여러 후보 map을 점수화하고 좋은 순서로 정렬합니다.

    Returns
    -------
    [(score, index_in_maps), ...]  score 오름차순, 동점이면 index 순
    """
    scored = [(evaluate_decluster(m, statistic, fault_count), i) for i, m in enumerate(maps)]
    return sorted(scored)

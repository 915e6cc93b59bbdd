"""
simulator.py

Resilver Load Simulator

이 모듈은 permutation map(DraidMap)과 고장 디바이스 집합을 받아,
모든 row를 돌면서 resilver가 각 디바이스에 주는 read/write 부하를 집계한다.

이 프로젝트에서의 위치
----------------------
- models.py: DraidMap / LoadTable / 에러 타입 같은 데이터 모델
- permutation.py: map 생성/확장 (입력)
- simulator.py: 고장 1건(조합 1개)에 대한 resilver 부하 계산
- decluster.py: 모든 fault 조합에 대해 simulator를 호출하고 통계로 줄이는 평가기
- metrics.py: 평가 결과를 summary row / CSV로 정리

핵심 규칙(row 단위)
-------------------
1) row를 group_sizes대로 앞에서부터 자르고, 마지막 spare_count 칸은 spare chunk.
2) 고장 멤버가 없는 group은 건너뛴다(재구성 작업 없음).
3) 고장 멤버가 있는 group:
   - 정상 멤버는 모두 read +1 (재구성에 읽혀야 함)
   - 고장 멤버마다 spare chunk에서 “고장 나지 않은 다음 spare”를 골라 write +1
   - spare 탐색은 group마다 spare chunk의 처음부터 다시 시작한다.
4) spare chunk가 바닥나면 InsufficientSpares.

고장 집합은 map에 저장하지 않고 호출 인자로만 받는다.
그래서 같은 map을 여러 fault 조합에 대해 재사용해도 상태가 섞이지 않는다.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from models import DraidMap, InsufficientSpares, LoadTable


def _broken_set(dmap: DraidMap, broken_devices: Iterable[int]) -> frozenset:
    broken = frozenset(int(d) for d in broken_devices)
    for d in broken:
        if not (0 <= d < dmap.device_count):
            raise ValueError(f"고장 디바이스 {d} 가 0..{dmap.device_count - 1} 범위 밖입니다")
    if len(broken) > dmap.spare_count:
        raise InsufficientSpares(
            f"고장 디바이스 {len(broken)}개 > spare_count {dmap.spare_count}: "
            "row 당 spare 용량보다 많은 동시 고장은 받아낼 수 없습니다"
        )
    return broken


def simulate_resilver(
    dmap: DraidMap,
    broken_devices: Iterable[int],
    trace: Optional[List[Dict[str, Any]]] = None,
) -> LoadTable:
    """
    고장 집합 하나에 대한 resilver 부하를 계산한다.

    Parameters
    ----------
    dmap:
        평가할 permutation map (읽기 전용)
    broken_devices:
        고장으로 간주할 디바이스 인덱스들
    trace:
        list를 넘기면 재구성한 group마다
        {"row", "group", "reads": [...], "writes": [...]} dict를 append 한다.

    Raises
    ------
    InsufficientSpares:
        고장 수가 spare_count보다 많거나, 어떤 group에서 사용 가능한 spare가 바닥남
    ValueError:
        디바이스 인덱스 범위 밖
    """
    broken = _broken_set(dmap, broken_devices)
    loads = LoadTable(dmap.device_count)
    if not broken:
        return loads

    slices = dmap.group_slices()
    spare_start, spare_stop = dmap.spare_slice()

    for i, row in enumerate(dmap.rows):
        for j, (start, stop) in enumerate(slices):
            members = row[start:stop]
            if not any(dev in broken for dev in members):
                continue

            spare_idx = spare_start
            group_reads: List[int] = []
            group_writes: List[int] = []
            for dev in members:
                if dev not in broken:
                    loads.add_read(dev)
                    group_reads.append(dev)
                    continue

                while spare_idx < spare_stop and row[spare_idx] in broken:
                    spare_idx += 1
                # _broken_set 이후로는 도달하지 않음. spare 탐색 불변식 점검용
                if spare_idx >= spare_stop:
                    raise InsufficientSpares(
                        f"row {i}, group {j}: 고장 멤버를 받을 spare가 없습니다 "
                        f"(broken={sorted(broken)}, spares={list(row[spare_start:spare_stop])})"
                    )
                loads.add_write(row[spare_idx])
                group_writes.append(row[spare_idx])
                spare_idx += 1

            if trace is not None:
                trace.append({"row": i, "group": j, "reads": group_reads, "writes": group_writes})

    return loads


class ResilverSimulator:
    """
    map 하나에 대해 여러 고장 집합을 반복 시뮬레이션하는 얇은 래퍼.

    - enable_trace=True 이면 run()마다 group 단위 재구성 기록이 self.trace에 쌓인다.
      run_sim.py가 CSV로 저장하기 쉬운 평평한 dict 리스트 구조를 유지한다.
    - runs: run() 호출 횟수
    """

    def __init__(self, dmap: DraidMap, enable_trace: bool = False):
        self.map = dmap
        self.enable_trace = bool(enable_trace)
        self.trace: List[Dict[str, Any]] = []
        self.runs = 0

    def run(self, broken_devices: Iterable[int]) -> LoadTable:
        broken = tuple(broken_devices)
        events: Optional[List[Dict[str, Any]]] = [] if self.enable_trace else None
        loads = simulate_resilver(self.map, broken, trace=events)
        self.runs += 1

        if events:
            faults = "-".join(str(d) for d in sorted(broken))
            for ev in events:
                ev["faults"] = faults
            self.trace.extend(events)
        return loads

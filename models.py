from __future__ import annotations

"""
models.py

dRAID 레이아웃 분석기의 데이터 모델을 정의합니다.

핵심 목표
---------
1) permutation map을 “한 번 만들면 바뀌지 않는” 값으로 표현
   - DraidMap은 frozen dataclass이고 rows는 tuple-of-tuple입니다.
   - 시뮬레이터/평가기는 map을 읽기만 합니다.
   - 고장 디바이스(broken devices)는 map에 붙이지 않고 시뮬레이션 호출 인자로 넘깁니다.
     (같은 map을 여러 fault 조합에 대해 동시에 읽어도 안전)

2) resilver 부하 집계(LoadTable)
   - 디바이스별 reads/writes 카운터와 max 계열 파생값을 제공합니다.

3) 레이아웃 전제조건 검증
   - 잘못된 레이아웃은 InvalidLayout으로 즉시 거절합니다.

용어
----
- row: 한 stripe offset에서 “논리 slot -> 물리 디바이스” 매핑(디바이스 인덱스의 순열)
- group: row 안의 연속 구간. 하나의 redundancy 단위(data+parity)
- spare chunk: row 끝의 spare_count 칸. 어떤 group에도 속하지 않는 hot-spare 용량

주의
----
- (device_count - spare_count)가 group_count로 나눠떨어지지 않는 레이아웃은
  나머지 디바이스를 버리지 않고 InvalidLayout으로 거절합니다.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Tuple


# ============================================================
# Limits (레이아웃 배열 상한)
# ============================================================

MAX_GROUP_SIZE = 32
MAX_GROUPS = 128
MAX_SPARES = 100
MAX_DEVICES = MAX_GROUP_SIZE * MAX_GROUPS + MAX_SPARES
MAX_ROWS = 16384


# ============================================================
# Errors
# ============================================================

class InvalidLayout(ValueError):
    """map 구성 전제조건 위반 (디바이스/그룹/스페어 수가 맞지 않음)."""


class InsufficientSpares(RuntimeError):
    """
    한 row에서 고장 난 group 멤버를 모두 받아낼 사용 가능한 spare가 부족함.

    재시도 대상이 아니라 호출 측 전제조건 위반입니다.
    (요청한 fault 수가 map의 spare 용량보다 큼)
    """


# ============================================================
# Basic types
# ============================================================

class Statistic(Enum):
    """fault 조합별 max_total 샘플을 하나의 값으로 줄이는 방법."""
    WORST = "worst"
    MEAN = "mean"
    RMS = "rms"


Row = Tuple[int, ...]


def check_layout(device_count: int, group_count: int, spare_count: int, row_count: int = 1) -> int:
    """
    레이아웃 파라미터를 검증하고 group 크기를 반환합니다.

    Raises
    ------
    InvalidLayout:
        - device_count <= spare_count
        - spare_count < 0
        - group_count <= 0
        - (device_count - spare_count) % group_count != 0
        - row_count <= 0
    """
    if spare_count < 0:
        raise InvalidLayout(f"spare_count 는 0 이상이어야 합니다 (spare_count={spare_count})")
    if device_count <= spare_count:
        raise InvalidLayout(
            f"device_count 는 spare_count 보다 커야 합니다 ({device_count} <= {spare_count})"
        )
    if group_count <= 0:
        raise InvalidLayout(f"group_count 는 양수여야 합니다 (group_count={group_count})")

    data_devices = device_count - spare_count
    if data_devices % group_count != 0:
        raise InvalidLayout(
            f"(device_count - spare_count)={data_devices} 가 group_count={group_count} 로 "
            "나눠떨어지지 않습니다"
        )
    if row_count <= 0:
        raise InvalidLayout(f"row_count 는 양수여야 합니다 (row_count={row_count})")

    return data_devices // group_count


def is_valid_row(row: Sequence[int], device_count: int) -> bool:
    """row가 0..device_count-1 의 순열(bijection)인지."""
    return len(row) == device_count and sorted(row) == list(range(device_count))


# ============================================================
# Permutation map
# ============================================================

@dataclass(frozen=True)
class DraidMap:
    """
    permutation map.

    보유 상태
    --------
    - device_count: 레이아웃에 참여하는 물리 디바이스 수
    - group_count: row 당 redundancy group 수
    - spare_count: row 당 spare slot 수
    - group_sizes: group별 크기 (모두 (device_count - spare_count) / group_count)
    - rows: row 목록. 각 row는 길이 device_count의 디바이스 순열

    map은 생성기(permutation.generate_map)나 확장기(permutation.expand_map)가
    rows를 모두 채운 상태로 만들고, 이후에는 읽기 전용입니다.
    """

    device_count: int
    group_count: int
    spare_count: int
    rows: Tuple[Row, ...]
    group_sizes: Tuple[int, ...] = field(default=())

    def __post_init__(self) -> None:
        group_size = check_layout(self.device_count, self.group_count, self.spare_count, len(self.rows))
        if not self.group_sizes:
            object.__setattr__(self, "group_sizes", (group_size,) * self.group_count)
        elif len(self.group_sizes) != self.group_count or sum(self.group_sizes) != self.device_count - self.spare_count:
            raise InvalidLayout(f"group_sizes={self.group_sizes} 가 레이아웃과 맞지 않습니다")

        for i, row in enumerate(self.rows):
            if not is_valid_row(row, self.device_count):
                raise InvalidLayout(f"row {i} 가 0..{self.device_count - 1} 의 순열이 아닙니다: {row}")

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def spare_start(self) -> int:
        """spare chunk가 시작하는 column."""
        return self.device_count - self.spare_count

    def group_slices(self) -> List[Tuple[int, int]]:
        """group별 (start, stop) column 구간. row 앞쪽부터 연속으로 배치됩니다."""
        out = []
        start = 0
        for size in self.group_sizes:
            out.append((start, start + size))
            start += size
        return out

    def spare_slice(self) -> Tuple[int, int]:
        return self.spare_start, self.device_count


# ============================================================
# Resilver load table
# ============================================================

class LoadTable:
    """
    디바이스별 resilver 부하 (모든 row 합산).

    - reads[d]: group 재구성을 위해 d를 읽은 횟수
    - writes[d]: spare로서 d에 재구성 데이터를 쓴 횟수

    출력/포맷팅은 하지 않습니다. 읽기 접근자만 제공합니다.
    """

    def __init__(self, device_count: int):
        self.device_count = int(device_count)
        self._reads: List[int] = [0] * self.device_count
        self._writes: List[int] = [0] * self.device_count

    def add_read(self, dev: int) -> None:
        self._reads[dev] += 1

    def add_write(self, dev: int) -> None:
        self._writes[dev] += 1

    @property
    def reads(self) -> List[int]:
        return list(self._reads)

    @property
    def writes(self) -> List[int]:
        return list(self._writes)

    @property
    def totals(self) -> List[int]:
        return [r + w for r, w in zip(self._reads, self._writes)]

    @property
    def max_reads(self) -> int:
        return max(self._reads, default=0)

    @property
    def max_writes(self) -> int:
        return max(self._writes, default=0)

    @property
    def max_total(self) -> int:
        return max(self.totals, default=0)

    def normalized(self, row_count: int, group_count: int) -> Tuple[List[float], List[float]]:
        """
        reads/writes를 row 수에 무관한 값으로 정규화합니다.

        계산식:
            value * group_count / row_count

        decluster score와 같은 스케일이라 서로 비교할 수 있습니다.
        """
        scale = float(group_count) / row_count if row_count > 0 else 0.0
        return [r * scale for r in self._reads], [w * scale for w in self._writes]

    def __repr__(self) -> str:
        return f"LoadTable(reads={self._reads}, writes={self._writes})"

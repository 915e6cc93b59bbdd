from __future__ import annotations

"""
config.py

dRAID permutation 분석기의 실험 설정(Experiment Config) 모듈입니다.

이 파일은 분석기의 동작을 결정하는 입력 파라미터들을 한 곳에 모아,
- 같은 설정이면 같은 map/같은 score를 재현할 수 있고(재현성),
- 실행 전에 잘못된 레이아웃을 조기에 잡아내며(fail fast),
- 파생 값(group 크기, 확장 후 row 수, fault 조합 수 등)을 일관되게 계산하도록 합니다.

계약(Contract)
--------------
- 실행 전에 `LayoutConfig.prepare()`를 호출하는 것을 권장합니다.
  prepare()는
  1) statistic 이름을 정규화하고,
  2) validate()로 값 범위를 검증합니다.

재현성(Reproducibility)에서 중요한 노브(knob)
--------------------------------------------
- `rng_seed`: permutation 생성의 유일한 난수 입력입니다.
- `expand`: True면 base map의 모든 cyclic relabeling을 평가합니다(row 수 × device_count).

자주 생기는 실수(Common pitfalls)
---------------------------------
- (device_count - spare_count)가 group_count로 나눠떨어지지 않는 레이아웃:
  남는 디바이스를 조용히 버리지 않고 InvalidLayout으로 거절합니다.
- fault_count > spare_count:
  설정 단계에서는 막지 않습니다. 평가 시 InsufficientSpares로 드러나며,
  이는 “이 map이 요청한 내고장성을 감당하지 못한다”는 의미입니다.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict

from decluster import SUPPORTED_FAULT_COUNTS, fault_set_count, get_statistic
from models import MAX_DEVICES, MAX_GROUP_SIZE, MAX_GROUPS, MAX_ROWS, MAX_SPARES, check_layout


@dataclass
class LayoutConfig:
    """
    실험 설정 컨테이너.

    1) Layout(레이아웃 형태): 디바이스/그룹/스페어 수, row 수
    2) RNG + 확장: permutation 재현성, cyclic 확장 여부
    3) 평가: statistic(worst|mean|rms), 동시 고장 수(1|2)
    """

    # ---------------------------------------------------------------------
    # 1) Layout
    # ---------------------------------------------------------------------
    device_count: int = 12
    group_count: int = 2
    spare_count: int = 2
    row_count: int = 100

    # ---------------------------------------------------------------------
    # 2) RNG / 확장
    # ---------------------------------------------------------------------
    rng_seed: int = 42
    expand: bool = False

    # ---------------------------------------------------------------------
    # 3) 평가
    # ---------------------------------------------------------------------
    statistic: str = "mean"
    fault_count: int = 1

    # 내부 플래그: validate()가 성공적으로 끝났는지 표시
    _validated: bool = field(default=False, init=False, repr=False)

    # ---------------------------------------------------------------------
    # 파생값
    # ---------------------------------------------------------------------

    @property
    def data_devices(self) -> int:
        """group에 배정되는 디바이스 수 (device_count - spare_count)."""
        return max(0, int(self.device_count) - int(self.spare_count))

    @property
    def group_size(self) -> int:
        return self.data_devices // self.group_count if self.group_count > 0 else 0

    @property
    def effective_row_count(self) -> int:
        """실제로 평가되는 row 수. expand=True면 row_count * device_count."""
        return self.row_count * self.device_count if self.expand else self.row_count

    @property
    def fault_set_count(self) -> int:
        """평가기가 시뮬레이션할 fault 조합 수 C(device_count, fault_count)."""
        return fault_set_count(self.device_count, self.fault_count)

    # ---------------------------------------------------------------------
    # 검증 / 준비
    # ---------------------------------------------------------------------

    def validate(self) -> None:
        """
        설정 값의 범위와 기본 일관성을 검증합니다.

        Raises
        ------
        InvalidLayout:
            레이아웃 전제조건 위반(models.check_layout)
        ValueError:
            상한 초과, 알 수 없는 statistic, 지원하지 않는 fault_count
        """
        check_layout(self.device_count, self.group_count, self.spare_count, self.row_count)

        # 레이아웃 상한
        if self.device_count > MAX_DEVICES:
            raise ValueError(f"device_count 는 {MAX_DEVICES} 이하여야 합니다")
        if self.group_count > MAX_GROUPS:
            raise ValueError(f"group_count 는 {MAX_GROUPS} 이하여야 합니다")
        if self.group_size > MAX_GROUP_SIZE:
            raise ValueError(f"group 크기({self.group_size}) 는 {MAX_GROUP_SIZE} 이하여야 합니다")
        if self.spare_count > MAX_SPARES:
            raise ValueError(f"spare_count 는 {MAX_SPARES} 이하여야 합니다")
        if self.effective_row_count > MAX_ROWS:
            raise ValueError(
                f"평가 row 수({self.effective_row_count}) 는 {MAX_ROWS} 이하여야 합니다"
            )

        get_statistic(self.statistic)
        if self.fault_count not in SUPPORTED_FAULT_COUNTS:
            raise ValueError(f"fault_count 는 1 또는 2 여야 합니다 (fault_count={self.fault_count})")

        self._validated = True

    def prepare(self) -> None:
        """
        실행 전 권장 초기화 함수.

        statistic 별칭(max/avg)을 정식 이름으로 바꾸고 validate()를 호출합니다.
        """
        self.statistic = get_statistic(self.statistic).value
        self.validate()

    # ---------------------------------------------------------------------
    # 직렬화(실험 메타데이터 저장용)
    # ---------------------------------------------------------------------

    def to_dict(self) -> Dict:
        """설정을 dict로 변환합니다(`_validated` 같은 내부 상태는 제외)."""
        d = asdict(self)
        d.pop("_validated", None)
        return d

from __future__ import annotations

"""
experiments.py

실험 실행(Experiment Runner) 스크립트입니다.

이 스크립트는 `run_sim.py`의 단일 실행 기능을 확장하여,
- 여러 레이아웃/통계 조합(grid),
- 여러 시나리오(YAML),
- 여러 seed 반복(repeat) = 같은 레이아웃의 후보 map 여러 개
를 한 번에 돌리고, 결과를 summary.csv로 누적 저장합니다.
마지막에는 레이아웃별로 score가 가장 낮은(가장 잘 decluster된) 후보 seed를 알려줍니다.

입력/출력 계약(Contract)
-----------------------
Input:
- 레이아웃/평가 파라미터 (run_sim.py와 같은 이름)
- (옵션) --grid: "k=v1,v2; k2=v3,v4" 형태의 그리드 명세
- (옵션) --scenarios: YAML 파일(시나리오 리스트 또는 {scenarios: [...]})

Output:
- summary.csv에 결과 append(--out_csv)
- 콘솔에 실행별 요약(탭 구분) + 레이아웃별 best 후보 출력

가정/주의(Assumptions / Pitfalls)
---------------------------------
- YAML 로딩은 PyYAML이 필요합니다.
- faults > spares인 조합은 InsufficientSpares로 실행이 중단됩니다.
  그리드에 그런 조합을 넣지 않도록 주의하세요.
"""

import os
import argparse
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from config import LayoutConfig
from decluster import decluster_report
from metrics import append_summary_csv, summary_row
from permutation import build_candidate
from run_sim import _quick_qc


# ------------------------------------------------------------
# 유틸
# ------------------------------------------------------------

def _ensure_dir(p: str) -> None:
    """디렉토리가 없으면 생성합니다."""
    os.makedirs(p, exist_ok=True)


# ------------------------------------------------------------
# 단일 실행(One run)
# ------------------------------------------------------------

def run_once(args: argparse.Namespace, out_dir: str, out_csv: Optional[str]) -> Tuple[Dict[str, Any], bool]:
    """
    단일 후보 map을 만들고 평가한 뒤 결과 row를 반환합니다.

    Flow
    ----
    1) LayoutConfig 구성 + prepare()
    2) generate_map (+ expand_map)
    3) decluster_report
    4) meta 구성 + summary.csv append(옵션)
    5) summary_row 생성 + QC

    Returns
    -------
    (row, ok)
    """
    cfg = LayoutConfig(
        device_count=int(args.devices),
        group_count=int(args.groups),
        spare_count=int(args.spares),
        row_count=int(args.rows),
        rng_seed=int(args.seed),
        expand=bool(args.expand),
        statistic=str(args.statistic),
        fault_count=int(args.faults),
    )
    cfg.prepare()

    dmap, _base = build_candidate(
        cfg.device_count, cfg.group_count, cfg.spare_count, cfg.row_count,
        seed=cfg.rng_seed, expand=cfg.expand,
    )
    result = decluster_report(dmap, cfg.statistic, cfg.fault_count)

    meta: Dict[str, Any] = {
        "run_id": getattr(args, "note", None) or f"d{cfg.device_count}g{cfg.group_count}s{cfg.spare_count}_{cfg.rng_seed}",
        "seed": cfg.rng_seed,
        "note": getattr(args, "note", ""),
        "ts": datetime.now().isoformat(timespec="seconds"),
    }

    if out_csv:
        append_summary_csv(out_csv, result, cfg, meta)

    row = summary_row(result, cfg, meta)
    ok = True if getattr(args, "qc", "warn") == "off" else _quick_qc(row)
    return row, ok


# ------------------------------------------------------------
# Grid 빌더 / 값 파싱
# ------------------------------------------------------------

def _parse_csv_list(s: str) -> List[str]:
    """'a,b,c' 형태 문자열을 리스트로 변환합니다(빈 토큰 제거)."""
    return [x for x in (s or "").split(",") if x != ""]


def _coerce_value(x: str) -> Any:
    """
    그리드 문자열 값을 적절한 타입으로 캐스팅합니다.

    - "none"/"null" -> None
    - "true"/"false" -> bool
    - 숫자 형태 -> int 또는 float
    - 그 외 -> 원문 문자열
    """
    if x.lower() in ("none", "null"):
        return None
    if x.lower() in ("true", "false"):
        return x.lower() == "true"
    try:
        if "." in x:
            return float(x)
        return int(x)
    except ValueError:
        return x


def build_grid(args: argparse.Namespace) -> List[Dict[str, Any]]:
    """
    --grid 옵션을 파싱하여 매개변수 데카르트 곱 실험 목록을 생성합니다.

    예시
    ----
    --grid "devices=12,24; spares=2,4; statistic=mean,rms"
    """
    items: List[List[Tuple[str, Any]]] = []
    if not args.grid:
        return [vars(args).copy()]

    for pair in args.grid.split(";"):
        pair = pair.strip()
        if not pair:
            continue
        k, v = pair.split("=", 1)
        vals = _parse_csv_list(v)
        items.append([(k.strip(), _coerce_value(x.strip())) for x in vals])

    grids: List[Dict[str, Any]] = []

    def _dfs(i: int, acc: Dict[str, Any]) -> None:
        if i == len(items):
            d = vars(args).copy()
            d.update(acc)
            grids.append(d)
            return
        for k, v in items[i]:
            acc[k] = v
            _dfs(i + 1, acc)
            acc.pop(k, None)

    _dfs(0, {})
    return grids


# ------------------------------------------------------------
# YAML 시나리오 로더
# ------------------------------------------------------------

def load_scenarios(path: str) -> List[Dict[str, Any]]:
    """
    YAML 시나리오 파일을 로드합니다.

    지원 형식
    --------
    1) 리스트 형태: [ {scenario1}, {scenario2}, ... ]
    2) dict + scenarios 키: { scenarios: [ ... ] }
    """
    import yaml

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if isinstance(data, dict) and "scenarios" in data:
        return list(data["scenarios"])
    if isinstance(data, list):
        return data

    raise RuntimeError("시나리오 파일 형식이 잘못되었습니다 (list 또는 {scenarios: [...]})")


# ------------------------------------------------------------
# 후보 비교
# ------------------------------------------------------------

def best_by_layout(runs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    레이아웃(디바이스/그룹/스페어/row/확장/통계/고장 수)별로 score가 가장 낮은 row를 고릅니다.
    동점이면 먼저 실행된 row.
    """
    best: Dict[Tuple, Dict[str, Any]] = {}
    for r in runs:
        key = (
            r.get("device_count"), r.get("group_count"), r.get("spare_count"),
            r.get("base_rows"), r.get("expand"), r.get("statistic"), r.get("fault_count"),
        )
        if key not in best or r["score"] < best[key]["score"]:
            best[key] = r
    return list(best.values())


def _expand_repeats(conf: Dict[str, Any], default_repeat: int, default_seed: int) -> List[argparse.Namespace]:
    rep = int(conf.get("repeat", default_repeat))
    base_seed = int(conf.get("seed", default_seed))
    out = []
    for r in range(rep):
        d = conf.copy()
        d["seed"] = base_seed + r
        out.append(argparse.Namespace(**d))
    return out


# ------------------------------------------------------------
# CLI 엔트리포인트
# ------------------------------------------------------------

def main() -> None:
    """
    experiments.py CLI 엔트리포인트.

    실행 모드
    --------
    1) YAML 모드: --scenarios <path>
    2) Grid/단일 모드: --grid ... 또는 단일 args

    repeat 처리
    -----------
    --repeat N이면 seed를 base_seed부터 +1씩 증가시키며 N개의 후보 map을 평가합니다.

    QC 처리
    -------
    - off   : 결과와 무관하게 진행
    - warn  : 경고만 출력
    - strict: 경고가 나오면 즉시 종료
    """
    ap = argparse.ArgumentParser(description="Experiments runner (grid/YAML/multiseed candidates)")

    ap.add_argument("--devices", type=int, default=12)
    ap.add_argument("--groups", type=int, default=2)
    ap.add_argument("--spares", type=int, default=2)
    ap.add_argument("--rows", type=int, default=100)
    ap.add_argument("--seed", type=int, default=42)
    ap.add_argument("--expand", action="store_true")
    ap.add_argument("--statistic", type=str, default="mean", choices=["worst", "max", "mean", "avg", "rms"])
    ap.add_argument("--faults", type=int, default=1, choices=[1, 2])

    ap.add_argument("--grid", type=str, default=None, help="키=값1,값2; 키2=... 형식")
    ap.add_argument("--repeat", type=int, default=1, help="후보 seed 개수(시작 시드부터 +1 증가)")
    ap.add_argument("--scenarios", type=str, default=None, help="YAML 파일 경로(여러 실험 사양)")

    ap.add_argument("--out_dir", type=str, default="results/exp")
    ap.add_argument("--out_csv", type=str, default="results/exp/summary.csv")
    ap.add_argument("--note", type=str, default="")
    ap.add_argument(
        "--qc", type=str, default="warn", choices=["off", "warn", "strict"],
        help="off=미실행, warn=경고만 출력, strict=경고 시 종료",
    )

    args = ap.parse_args()

    _ensure_dir(args.out_dir)
    out_csv = args.out_csv

    confs: List[Dict[str, Any]] = []
    if args.scenarios:
        for sc in load_scenarios(args.scenarios):
            d = vars(args).copy()
            d.update(sc)
            d["note"] = sc.get("note", args.note)
            confs.append(d)
    else:
        confs = build_grid(args)

    runs: List[Dict[str, Any]] = []
    for conf in confs:
        for ns in _expand_repeats(conf, args.repeat, args.seed):
            row, ok = run_once(ns, args.out_dir, out_csv)
            runs.append(row)
            if args.qc == "strict" and not ok:
                raise SystemExit("QC failed (strict mode). 실험을 중단합니다.")

    # --------------------------------------------------------
    # 콘솔 요약 출력(탭 구분)
    # --------------------------------------------------------
    if runs:
        cols = [
            "device_count", "group_count", "spare_count", "row_count", "seed",
            "statistic", "fault_count", "score", "worst", "mean", "rms", "worst_faults",
        ]
        print("\t".join(cols))
        for r in runs:
            print("\t".join("" if r.get(c) is None else str(r.get(c)) for c in cols))

        for b in best_by_layout(runs):
            print(
                f"[EXP] best d{b['device_count']}g{b['group_count']}s{b['spare_count']} "
                f"rows={b['row_count']} {b['statistic']}/f{b['fault_count']}: "
                f"seed={b['seed']} score={b['score']}"
            )

    if out_csv and os.path.exists(out_csv):
        print(f"[EXP DONE] 결과 CSV → {out_csv}")


if __name__ == "__main__":
    main()

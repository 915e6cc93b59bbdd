from __future__ import annotations

"""
run_sim.py

dRAID permutation 분석기 실행기(Entry Point).

이 파일의 역할
--------------
사용자가 원하는 건 결국 3가지

1) 이 레이아웃(디바이스/그룹/스페어/row)으로 map을 만들어 점수를 보고
2) 결과를 CSV로 남기고
3) 필요하면 최악 고장 조합의 디바이스별 부하와 group 단위 재구성 기록도 저장하기

run_sim.py는 그 3가지를 명령줄(CLI)로 한 번에 묶어주는 실행 스크립트다.

흐름
----
- argparse로 인자 파싱
- LayoutConfig 생성 + prepare()
- generate_map (+ expand_map)
- decluster_report (모든 fault 조합 시뮬레이션)
- QC
- (옵션) summary.csv append / loads CSV / trace CSV

실행 예시
---------
    python run_sim.py --devices 12 --groups 2 --spares 2 --rows 100 --statistic mean --faults 1
    python run_sim.py --devices 24 --groups 4 --spares 4 --rows 64 --expand --faults 2 \
        --out_dir results/d24 --out_csv summary.csv --loads_csv loads.csv

주의 / 흔한 함정
----------------
- out_csv 등 상대 경로는 out_dir 밑으로 붙는다. (절대경로는 그대로)
- --trace_csv는 모든 fault 조합 × 모든 row의 재구성 기록이라 크기가 빠르게 커진다.
"""

import os
import sys
import argparse
import math
from datetime import datetime

from config import LayoutConfig
from decluster import decluster_report
from metrics import append_summary_csv, load_rows, summary_row, write_rows_csv
from permutation import build_candidate
from simulator import ResilverSimulator


# ============================================================
# Helpers
# ============================================================

def _resolve_path(path: str | None, out_dir: str) -> str | None:
    """상대 경로면 out_dir 밑으로, 절대 경로면 그대로."""
    if path is None:
        return None
    return path if os.path.isabs(path) else os.path.join(out_dir, path)


def _quick_qc(row: dict) -> bool:
    """
    결과 요약 row에 대한 상식 선의 무결성 점검.

    - score가 유한한 음이 아닌 값인지
    - rms >= mean, worst >= rms (통계 사이의 대수적 관계)
    - max_total >= max_reads, max_total >= max_writes

    반환:
    - 문제가 없으면 True
    - 경고가 있으면 False (strict 모드에서는 실험 중단 트리거)
    """
    warn = []
    g = row.get
    eps = 1e-6

    score = g("score")
    worst = g("worst")
    mean = g("mean")
    rms = g("rms")
    mr = g("max_reads")
    mw = g("max_writes")
    mt = g("max_total")

    if score is None or not math.isfinite(score) or score < 0:
        warn.append(f"score={score} (유한한 0 이상의 값이어야 함)")
    if rms is not None and mean is not None and rms + eps < mean:
        warn.append(f"rms({rms}) < mean({mean})")
    if worst is not None and rms is not None and worst + eps < rms:
        warn.append(f"worst({worst}) < rms({rms})")
    if mt is not None and mr is not None and mt < mr:
        warn.append(f"max_total({mt}) < max_reads({mr})")
    if mt is not None and mw is not None and mt < mw:
        warn.append(f"max_total({mt}) < max_writes({mw})")

    if warn:
        print("[QC] WARN:", " | ".join(warn))
        return False

    print("[QC] OK  :", f"statistic={g('statistic')} seed={g('seed')} score={score}")
    return True


def _write_trace_csv(path: str, trace: list) -> None:
    rows = [
        {
            "faults": ev.get("faults", ""),
            "row": ev["row"],
            "group": ev["group"],
            "reads": "-".join(str(d) for d in ev["reads"]),
            "writes": "-".join(str(d) for d in ev["writes"]),
        }
        for ev in trace
    ]
    write_rows_csv(path, rows)


# ============================================================
# Main
# ============================================================

def main():
    ap = argparse.ArgumentParser(
        description="dRAID permutation analyzer: reproducible decluster score for one layout"
    )

    # --------------------------------------------------------
    # 레이아웃 파라미터
    # --------------------------------------------------------
    ap.add_argument("--devices", type=int, default=12, help="물리 디바이스 수")
    ap.add_argument("--groups", type=int, default=2, help="row 당 redundancy group 수")
    ap.add_argument("--spares", type=int, default=2, help="row 당 spare slot 수")
    ap.add_argument("--rows", type=int, default=100, help="base map의 row 수")
    ap.add_argument("--seed", type=int, default=42, help="랜덤 시드")
    ap.add_argument("--expand", action="store_true", help="모든 cyclic relabeling으로 row 확장")

    # --------------------------------------------------------
    # 평가
    # --------------------------------------------------------
    ap.add_argument(
        "--statistic", type=str, default="mean",
        choices=["worst", "max", "mean", "avg", "rms"],
        help="fault 조합별 max_total을 줄이는 통계"
    )
    ap.add_argument("--faults", type=int, default=1, choices=[1, 2], help="동시 고장 디바이스 수")

    # --------------------------------------------------------
    # 실행/출력
    # --------------------------------------------------------
    ap.add_argument("--out_dir", type=str, default="results/run", help="결과를 저장할 디렉토리")
    ap.add_argument("--out_csv", type=str, default=None, help="요약 CSV append 경로 (권장: summary.csv)")
    ap.add_argument("--loads_csv", type=str, default=None, help="최악 조합의 디바이스별 부하 CSV")
    ap.add_argument("--trace_csv", type=str, default=None, help="group 단위 재구성 기록 CSV")
    ap.add_argument("--note", type=str, default="", help="메모/주석")
    ap.add_argument(
        "--qc", type=str, default="warn", choices=["off", "warn", "strict"],
        help="off=미실행, warn=경고만 출력, strict=경고 시 비정상 종료"
    )

    args = ap.parse_args()

    out_dir = args.out_dir
    os.makedirs(out_dir, exist_ok=True)

    out_csv_path = _resolve_path(args.out_csv, out_dir)
    loads_csv_path = _resolve_path(args.loads_csv, out_dir)
    trace_csv_path = _resolve_path(args.trace_csv, out_dir)

    # --------------------------------------------------------
    # Config + Map
    # --------------------------------------------------------
    cfg = LayoutConfig(
        device_count=args.devices,
        group_count=args.groups,
        spare_count=args.spares,
        row_count=args.rows,
        rng_seed=args.seed,
        expand=args.expand,
        statistic=args.statistic,
        fault_count=args.faults,
    )
    cfg.prepare()

    dmap, _base = build_candidate(
        cfg.device_count, cfg.group_count, cfg.spare_count, cfg.row_count,
        seed=cfg.rng_seed, expand=cfg.expand,
    )
    print(
        f"[RUN] devices={cfg.device_count} groups={cfg.group_count} spares={cfg.spare_count} "
        f"rows={dmap.row_count} combos={cfg.fault_set_count}"
    )

    # --------------------------------------------------------
    # Evaluate
    # --------------------------------------------------------
    sim = ResilverSimulator(dmap, enable_trace=bool(trace_csv_path))
    result = decluster_report(dmap, cfg.statistic, cfg.fault_count, sim=sim)

    meta = {
        "run_id": args.note or f"d{cfg.device_count}g{cfg.group_count}s{cfg.spare_count}_{cfg.rng_seed}",
        "seed": cfg.rng_seed,
        "note": args.note,
        "ts": datetime.now().isoformat(timespec="seconds"),
    }
    row = summary_row(result, cfg, meta)

    if args.qc != "off":
        ok = _quick_qc(row)
        if args.qc == "strict" and not ok:
            raise SystemExit(2)

    print(f"[RESULT] {result.statistic.value} score={result.score:.6f} "
          f"(worst={result.worst:.6f} mean={result.mean:.6f} rms={result.rms:.6f})")

    # --------------------------------------------------------
    # 결과 저장 (가능한 것만)
    # --------------------------------------------------------
    if out_csv_path:
        append_summary_csv(out_csv_path, result, cfg, meta)
        print(f"[RUN DONE] 결과 CSV append → {out_csv_path}")

    if loads_csv_path:
        write_rows_csv(loads_csv_path, load_rows(result))
        print(f"[RUN DONE] 디바이스별 부하 CSV → {loads_csv_path}")

    if trace_csv_path:
        if sim.trace:
            _write_trace_csv(trace_csv_path, sim.trace)
            print(f"[RUN DONE] trace CSV → {trace_csv_path}")
        else:
            print("[RUN DONE] trace 비어 있음 (재구성된 group 없음)", file=sys.stderr)


if __name__ == "__main__":
    main()

from __future__ import annotations

"""
metrics.py

decluster 평가 결과를 숫자(메트릭)로 뽑아내고, summary.csv로 저장하는 모듈입니다.

1) 메트릭 추출(Collect)
   - DeclusterResult + LayoutConfig를 한 행(row)짜리 평평한 dict로 만듭니다.
2) 요약 기록(Log)
   - 실험 1회(run)마다 summary.csv에 append 방식으로 누적 기록합니다.
3) 재현성(Reproducibility)
   - meta(seed/statistic/note/시간 등)를 row에 합쳐 저장하여
     “이 score가 어떤 조건에서 나왔는지” CSV만 봐도 추적 가능하게 합니다.

입력/출력 계약(Contract)
-----------------------
- collect_run_metrics(result, cfg) -> Dict[str, Any]
- summary_row(result, cfg, meta) -> Dict[str, Any]
- append_summary_csv(path, result, cfg, meta) : summary.csv에 1행 append
- load_rows(result) -> 최악 조합의 디바이스별 부하 rows (loads CSV용)

주의
----
- score/worst/mean/rms는 모두 (raw / row_count * group_count)로 정규화된 값입니다.
- load_* 통계는 최악 fault 조합(worst_faults) 하나의 디바이스별 정규화 부하입니다.
"""

from typing import Any, Dict, List, Optional
import csv
import math
import os

from config import LayoutConfig
from decluster import DeclusterResult


# ------------------------------------------------------------
# 내부 유틸
# ------------------------------------------------------------

def _list_stat(xs: List[float]) -> Dict[str, float]:
    """리스트 통계(min/max/avg/std). std는 모집단 기준(분모=n)."""
    if not xs:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "std": 0.0}

    n = len(xs)
    mn = min(xs)
    mx = max(xs)
    avg = sum(xs) / n
    var = sum((x - avg) ** 2 for x in xs) / n
    return {"min": mn, "max": mx, "avg": avg, "std": math.sqrt(var)}


def _faults_str(faults) -> str:
    return "-".join(str(f) for f in faults)


# ------------------------------------------------------------
# 메트릭 수집
# ------------------------------------------------------------

def collect_run_metrics(result: DeclusterResult, cfg: Optional[LayoutConfig] = None) -> Dict[str, Any]:
    """
    decluster 평가 1회의 핵심 메트릭을 추출합니다.

    반환 메트릭(주요)
    -----------------
    - device_count, group_count, spare_count, row_count(실제 평가 row 수), expand
    - statistic, fault_count, combinations
    - score, worst, mean, rms
    - worst_faults, max_reads, max_writes, max_total
    - read_min/max/avg/std, write_min/max/avg/std (최악 조합, 정규화)
    """
    loads = result.worst_loads
    if loads is not None:
        reads, writes = loads.normalized(result.row_count, result.group_count)
        max_reads, max_writes, max_total = loads.max_reads, loads.max_writes, loads.max_total
    else:
        reads, writes = [], []
        max_reads = max_writes = max_total = 0

    rs = _list_stat(reads)
    ws = _list_stat(writes)

    row: Dict[str, Any] = {}
    if cfg is not None:
        row.update({
            "device_count": cfg.device_count,
            "group_count": cfg.group_count,
            "spare_count": cfg.spare_count,
            "base_rows": cfg.row_count,
            "expand": 1 if cfg.expand else 0,
        })

    row.update({
        "row_count": result.row_count,
        "statistic": result.statistic.value,
        "fault_count": result.fault_count,
        "combinations": result.combinations,

        "score": round(result.score, 6),
        "worst": round(result.worst, 6),
        "mean": round(result.mean, 6),
        "rms": round(result.rms, 6),

        "worst_faults": _faults_str(result.worst_faults),
        "max_reads": max_reads,
        "max_writes": max_writes,
        "max_total": max_total,

        "read_min": round(rs["min"], 6),
        "read_max": round(rs["max"], 6),
        "read_avg": round(rs["avg"], 6),
        "read_std": round(rs["std"], 6),
        "write_min": round(ws["min"], 6),
        "write_max": round(ws["max"], 6),
        "write_avg": round(ws["avg"], 6),
        "write_std": round(ws["std"], 6),
    })
    return row


def summary_row(
    result: DeclusterResult,
    cfg: Optional[LayoutConfig] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """metrics + meta (겹치는 키는 meta 우선)."""
    row = collect_run_metrics(result, cfg)
    if meta:
        row.update(meta)
    return row


# ------------------------------------------------------------
# 요약 CSV 저장
# ------------------------------------------------------------

def append_summary_csv(
    path: str,
    result: DeclusterResult,
    cfg: Optional[LayoutConfig] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    """
    summary.csv에 “한 run의 결과”를 1행 append합니다.

    동작 규칙
    --------
    - 파일이 없으면 row.keys()를 알파벳 정렬한 순서로 헤더를 만듭니다.
    - 파일이 있으면 기존 헤더 순서를 유지하고, 새 컬럼은 뒤에 추가합니다.
    """
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    row = summary_row(result, cfg, meta)
    write_header = not os.path.exists(path)

    if write_header:
        fieldnames = sorted(row.keys())
    else:
        with open(path, "r", newline="", encoding="utf-8") as f:
            r = csv.reader(f)
            try:
                header = next(r)
            except StopIteration:
                header = []
                write_header = True
            old_rows = list(r)
        fieldnames = list(header)
        for k in row.keys():
            if k not in fieldnames:
                fieldnames.append(k)

        # 헤더가 늘어났으면 기존 행을 새 헤더로 다시 씀 (빈 칸은 "")
        if header and fieldnames != header:
            with open(path, "w", newline="", encoding="utf-8") as f:
                w = csv.writer(f)
                w.writerow(fieldnames)
                for old in old_rows:
                    w.writerow(old + [""] * (len(fieldnames) - len(old)))

    with open(path, "a", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        if write_header:
            w.writeheader()
        w.writerow(row)


# ------------------------------------------------------------
# 디바이스별 부하 (최악 조합)
# ------------------------------------------------------------

def load_rows(result: DeclusterResult) -> List[Dict[str, Any]]:
    """
    최악 fault 조합의 디바이스별 reads/writes를 행 목록으로 반환합니다.

    각 행: device, reads, writes, total, reads_norm, writes_norm, broken
    """
    loads = result.worst_loads
    if loads is None:
        return []

    reads_n, writes_n = loads.normalized(result.row_count, result.group_count)
    broken = set(result.worst_faults)
    out = []
    for d, (r, w) in enumerate(zip(loads.reads, loads.writes)):
        out.append({
            "device": d,
            "reads": r,
            "writes": w,
            "total": r + w,
            "reads_norm": round(reads_n[d], 6),
            "writes_norm": round(writes_n[d], 6),
            "broken": 1 if d in broken else 0,
        })
    return out


def write_rows_csv(path: str, rows: List[Dict[str, Any]]) -> None:
    """dict 행 목록을 CSV로 저장합니다(덮어쓰기). 비어 있으면 아무것도 하지 않습니다."""
    if not rows:
        return
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        w.writeheader()
        for r in rows:
            w.writerow(r)

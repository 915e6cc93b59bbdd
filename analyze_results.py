from __future__ import annotations

"""
analyze_results.py

decluster 실험 결과(summary.csv)를 수집/병합하고,
후보 map 비교표와 기본 분석 플롯을 생성하는 “후처리(analysis) 엔트리포인트”입니다.

1) 결과 수집(Collection)
   - 여러 실험 폴더에 흩어진 summary.csv를 찾아 한 번에 병합합니다.
   - 각 row에 "__source__" 컬럼을 추가해 출처를 추적합니다.
2) 후보 비교(Ranking)
   - 같은 레이아웃/통계/고장 수 안에서 score가 가장 낮은 seed를 뽑습니다.
3) 빠른 검증/요약(Quick sanity-check)
   - statistic별 score 분포, row 수 대비 score, 디바이스별 부하 막대그래프를 저장합니다.

입력/출력 계약(Contract)
-----------------------
Input:
- base_dir 아래의 summary.csv (또는 --filename)
- (옵션) --loads_csv: run_sim.py --loads_csv로 저장한 디바이스별 부하 CSV

Output (옵션):
- --out_csv: 병합된 전체 결과 CSV
- --plots_dir: 기본 플롯(PNG)
- 콘솔: 레이아웃별 best 후보 + 미리보기

가정/주의
---------
- matplotlib은 헤드리스 환경에서도 저장되도록 Agg 백엔드를 사용합니다.
- 숫자 컬럼은 pd.to_numeric(errors="coerce")로 안전 변환합니다.
"""

import os
import sys
import argparse
import glob
from typing import List, Optional

import numpy as np
import pandas as pd

import matplotlib
matplotlib.use("Agg")  # GUI 없이 파일 저장만 수행
import matplotlib.pyplot as plt


LAYOUT_COLS = ["device_count", "group_count", "spare_count", "row_count", "statistic", "fault_count"]
NUMERIC_COLS = [
    "device_count", "group_count", "spare_count", "base_rows", "row_count", "expand",
    "fault_count", "combinations", "seed",
    "score", "worst", "mean", "rms",
    "max_reads", "max_writes", "max_total",
    "read_max", "read_std", "write_max", "write_std",
]


# ------------------------------------------------------------
# 1) 결과 파일 수집 / 로딩
# ------------------------------------------------------------

def _find_summary_csvs(base_dir: str, merge_subdirs: bool, filename: str = "summary.csv") -> List[str]:
    """base_dir에서 summary.csv(또는 filename) 경로를 수집합니다(정렬됨)."""
    base_dir = os.path.abspath(base_dir)
    if not os.path.isdir(base_dir):
        raise FileNotFoundError(f"[analyze_results] base 디렉토리가 존재하지 않습니다: {base_dir}")

    if merge_subdirs:
        paths = glob.glob(os.path.join(base_dir, "**", filename), recursive=True)
    else:
        p = os.path.join(base_dir, filename)
        paths = [p] if os.path.exists(p) else []

    return sorted(paths)


def _read_csvs(paths: List[str]) -> pd.DataFrame:
    """
    여러 summary.csv를 읽어 하나의 DataFrame으로 병합합니다.

    - 컬럼이 달라도 합칠 수 있도록 컬럼 union으로 reindex 후 concat
    - 읽기 실패한 파일은 경고 후 스킵, 전부 실패하면 RuntimeError
    """
    frames = []
    for p in paths:
        try:
            df = pd.read_csv(p)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            print(f"[WARN] CSV 읽기 실패: {p}: {e}", file=sys.stderr)
            continue
        df["__source__"] = p
        frames.append(df)

    if not frames:
        raise RuntimeError("[analyze_results] 읽을 수 있는 summary CSV가 없습니다.")

    all_cols = sorted(set().union(*[set(f.columns) for f in frames]))
    frames = [f.reindex(columns=all_cols) for f in frames]
    return pd.concat(frames, ignore_index=True)


# ------------------------------------------------------------
# 2) 데이터 안전 처리 / 필터 / 랭킹
# ------------------------------------------------------------

def _ensure_out_dir(file_path: str) -> None:
    """파일 저장 경로의 부모 디렉토리가 없으면 생성합니다."""
    os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)


def _to_num(s: pd.Series) -> pd.Series:
    return pd.to_numeric(s, errors="coerce")


def _coerce_numeric_cols(df: pd.DataFrame, cols: List[str]) -> pd.DataFrame:
    """존재하는 숫자 후보 컬럼을 숫자형으로 변환한 copy를 반환합니다."""
    out = df.copy()
    for c in cols:
        if c in out.columns:
            out[c] = _to_num(out[c])
    return out


def apply_filters(
    df: pd.DataFrame,
    statistic: Optional[str] = None,
    devices: Optional[int] = None,
    faults: Optional[int] = None,
    max_score: Optional[float] = None,
) -> pd.DataFrame:
    """탐색용 필터(statistic / device_count / fault_count / score 상한)."""
    out = df.copy()

    if statistic is not None and "statistic" in out.columns:
        out = out[out["statistic"] == statistic]

    if devices is not None and "device_count" in out.columns:
        out = out[_to_num(out["device_count"]) == float(devices)]

    if faults is not None and "fault_count" in out.columns:
        out = out[_to_num(out["fault_count"]) == float(faults)]

    if max_score is not None and "score" in out.columns:
        out = out[_to_num(out["score"]) <= float(max_score)]

    return out


def best_candidates(df: pd.DataFrame) -> pd.DataFrame:
    """
    레이아웃 그룹마다 score가 가장 낮은 행(best 후보 seed)을 고릅니다.

    score가 NaN인 행은 제외합니다. 결과에 n_candidates(그룹 크기)를 덧붙입니다.
    """
    keys = [c for c in LAYOUT_COLS if c in df.columns]
    if "score" not in df.columns or not keys:
        return df.iloc[0:0]

    valid = df[np.isfinite(_to_num(df["score"]))]
    rows = []
    for _, group in valid.groupby(keys, dropna=False):
        scores = _to_num(group["score"]).to_numpy()
        best = group.iloc[int(np.argmin(scores))].copy()
        best["n_candidates"] = len(group)
        rows.append(best)

    if not rows:
        return df.iloc[0:0]
    return pd.DataFrame(rows).reset_index(drop=True)


# ------------------------------------------------------------
# 3) 플롯 생성
# ------------------------------------------------------------

def plot_score_by_statistic(df: pd.DataFrame, out_path: str) -> None:
    """statistic별 score 분포(박스플롯). seed 반복 결과의 퍼짐을 보여줍니다."""
    _ensure_out_dir(out_path)
    if not {"statistic", "score"}.issubset(df.columns):
        print("[plot] skip: missing columns(statistic, score)")
        return

    order = sorted(df["statistic"].dropna().unique())
    data = [_to_num(df.loc[df["statistic"] == s, "score"]).dropna() for s in order]

    plt.figure()
    plt.boxplot(data, showmeans=True)
    plt.xticks(range(1, len(order) + 1), order)
    plt.title("Decluster score by statistic")
    plt.ylabel("score (normalized)")
    plt.grid(True, linestyle=":", alpha=0.5)
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()


def plot_score_vs_rows(df: pd.DataFrame, out_path: str) -> None:
    """평가 row 수 대비 score 산점도. row가 늘수록 score가 수렴하는지 확인용."""
    _ensure_out_dir(out_path)
    if not {"row_count", "score"}.issubset(df.columns):
        print("[plot] skip: missing columns(row_count, score)")
        return

    plt.figure()
    plt.scatter(_to_num(df["row_count"]), _to_num(df["score"]), s=12, alpha=0.6)
    plt.xscale("log")
    plt.xlabel("row_count")
    plt.ylabel("score (normalized)")
    plt.title("Score vs Rows")
    plt.grid(True, linestyle=":", alpha=0.5)
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()


def plot_device_loads(loads: pd.DataFrame, out_path: str) -> None:
    """최악 고장 조합의 디바이스별 정규화 reads/writes 누적 막대그래프."""
    _ensure_out_dir(out_path)
    if not {"device", "reads_norm", "writes_norm"}.issubset(loads.columns):
        print("[plot] skip: missing columns(device, reads_norm, writes_norm)")
        return

    x = _to_num(loads["device"]).to_numpy()
    r = _to_num(loads["reads_norm"]).to_numpy()
    w = _to_num(loads["writes_norm"]).to_numpy()

    plt.figure()
    plt.bar(x, r, label="reads")
    plt.bar(x, w, bottom=r, label="writes")
    plt.xlabel("device")
    plt.ylabel("I/O per row (normalized)")
    plt.title("Resilver load per device (worst fault set)")
    plt.legend()
    plt.grid(True, axis="y", linestyle=":", alpha=0.5)
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()


# ------------------------------------------------------------
# 4) CLI
# ------------------------------------------------------------

def main() -> None:
    ap = argparse.ArgumentParser(description="Analyze decluster results (merge/rank/plots)")
    ap.add_argument("--base", type=str, required=True, help="기준 디렉토리")
    ap.add_argument("--merge-subdirs", action="store_true", help="하위 폴더의 summary.csv까지 병합")
    ap.add_argument("--filename", type=str, default="summary.csv", help="요약 파일명(기본 summary.csv)")
    ap.add_argument("--out_csv", type=str, default=None, help="병합 결과 CSV 저장 경로")
    ap.add_argument("--plots_dir", type=str, default=None, help="플롯 저장 디렉토리")
    ap.add_argument("--loads_csv", type=str, default=None, help="디바이스별 부하 CSV (막대그래프용)")
    ap.add_argument("--preview", type=int, default=20, help="콘솔 미리보기 행 수")

    ap.add_argument("--statistic", type=str, default=None, help="특정 statistic만 보기 (예: rms)")
    ap.add_argument("--devices", type=int, default=None, help="특정 device_count만 보기")
    ap.add_argument("--faults", type=int, default=None, help="특정 fault_count만 보기")
    ap.add_argument("--max_score", type=float, default=None, help="score 상한 필터")

    args = ap.parse_args()

    csvs = _find_summary_csvs(args.base, args.merge_subdirs, filename=args.filename)
    if not csvs:
        print("[analyze_results] 합칠 CSV가 없습니다.")
        return

    df = _coerce_numeric_cols(_read_csvs(csvs), NUMERIC_COLS)
    df_view = apply_filters(
        df,
        statistic=args.statistic,
        devices=args.devices,
        faults=args.faults,
        max_score=args.max_score,
    )

    print(f"[analyze_results] rows: view={len(df_view)} / total={len(df)}")
    if len(df_view) == 0:
        print("[analyze_results] (WARN) 필터 결과가 비었습니다. 조건을 완화해보세요.")

    if args.out_csv:
        _ensure_out_dir(args.out_csv)
        df.to_csv(args.out_csv, index=False)
        print(f"[analyze_results] merged CSV saved: {args.out_csv}  (rows={len(df)})")

    if args.plots_dir:
        os.makedirs(args.plots_dir, exist_ok=True)
        plot_score_by_statistic(df_view, os.path.join(args.plots_dir, "score_by_statistic.png"))
        plot_score_vs_rows(df, os.path.join(args.plots_dir, "score_vs_rows.png"))
        if args.loads_csv:
            plot_device_loads(pd.read_csv(args.loads_csv), os.path.join(args.plots_dir, "device_loads.png"))
        print(f"[analyze_results] plots saved to: {args.plots_dir}")

    best = best_candidates(df_view)
    if len(best):
        cols = [c for c in LAYOUT_COLS + ["seed", "score", "n_candidates", "__source__"] if c in best.columns]
        print("=== best candidate per layout ===")
        print(best[cols].to_string(index=False))

    n = max(int(args.preview), 0)
    if n > 0 and len(df_view):
        preview_cols = [c for c in LAYOUT_COLS + [
            "seed", "score", "worst", "mean", "rms", "worst_faults", "max_total",
        ] if c in df_view.columns]
        print(df_view[preview_cols].head(n).to_string(index=False))


if __name__ == "__main__":
    main()

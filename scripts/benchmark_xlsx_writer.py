from __future__ import annotations

import argparse
import json
import platform
import re
import statistics
import sys
import tempfile
import zipfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from time import perf_counter

import polars as pl

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from querybook.io.xlsx import SpecSubFooter, XlsxWriter  # noqa: E402


@dataclass(frozen=True)
class MergeBenchmarkScenario:
    name: str
    n_rows: int
    n_merged_cols: int
    n_value_cols: int
    len_run: int
    if_subfooter: bool = False


@dataclass(frozen=True)
class MergeBenchmarkStats:
    scenario: MergeBenchmarkScenario
    n_regions_expected: int
    repeats: int
    warmup_runs: int
    times_seconds: list[float]
    mean_seconds: float
    median_seconds: float
    min_seconds: float
    max_seconds: float
    stdev_seconds: float
    output_size_bytes_mean: int


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run merged-region export benchmarks for querybook XlsxWriter.",
    )
    parser.add_argument(
        "--repeat", type=int, default=5, help="Number of measured runs per scenario."
    )
    parser.add_argument(
        "--warmup", type=int, default=1, help="Number of warmup runs per scenario."
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=PROJECT_ROOT / "benchmarks" / "xlsx_writer" / "results",
        help="Directory where benchmark result files are written.",
    )
    parser.add_argument(
        "--profile",
        choices=("default", "huge"),
        default="default",
        help="Scenario profile to run.",
    )
    return parser.parse_args()


def build_scenarios(profile: str) -> list[MergeBenchmarkScenario]:
    if profile == "default":
        return [
            MergeBenchmarkScenario(
                name="short_runs_one_col",
                n_rows=20_000,
                n_merged_cols=1,
                n_value_cols=4,
                len_run=3,
            ),
            MergeBenchmarkScenario(
                name="long_runs_three_cols_subfooter",
                n_rows=20_000,
                n_merged_cols=3,
                n_value_cols=6,
                len_run=50,
                if_subfooter=True,
            ),
        ]

    return [
        MergeBenchmarkScenario(
            name="huge_short_runs",
            n_rows=200_000,
            n_merged_cols=2,
            n_value_cols=8,
            len_run=2,
        ),
        MergeBenchmarkScenario(
            name="huge_no_runs",
            n_rows=200_000,
            n_merged_cols=2,
            n_value_cols=8,
            len_run=1,
        ),
    ]


def detect_querybook_version() -> str:
    try:
        return metadata.version("querybook")
    except metadata.PackageNotFoundError:
        return "local-src"


def build_dataframe(scenario: MergeBenchmarkScenario) -> pl.DataFrame:
    df = pl.DataFrame(
        {"row_id": pl.Series("row_id", range(scenario.n_rows), dtype=pl.Int64)}
    )

    l_expr: list[pl.Expr] = []
    for n_idx in range(scenario.n_merged_cols):
        # column n repeats each key len_run * (n + 1) times
        n_len_run_col = scenario.len_run * (n_idx + 1)
        l_expr.append(
            (
                pl.lit(f"key_{n_idx:02d}_")
                + (pl.col("row_id") // n_len_run_col).cast(pl.String)
            ).alias(f"key_{n_idx:02d}")
        )
    for n_idx in range(scenario.n_value_cols):
        l_expr.append(
            ((pl.col("row_id") * (n_idx + 1)).cast(pl.Float64) / 7.0).alias(
                f"value_{n_idx:02d}"
            )
        )
    return df.with_columns(l_expr).drop("row_id")


def count_expected_regions(scenario: MergeBenchmarkScenario) -> int:
    n_regions = 0
    for n_idx in range(scenario.n_merged_cols):
        n_len_run_col = scenario.len_run * (n_idx + 1)
        if n_len_run_col < 2:
            continue
        n_full, n_rem = divmod(scenario.n_rows, n_len_run_col)
        n_regions += n_full + (1 if n_rem >= 2 else 0)
    return n_regions


def validate_xlsx_output(*, path_xlsx_out: Path, n_regions_expected: int) -> None:
    with zipfile.ZipFile(path_xlsx_out) as zf:
        v_xml_sheet = zf.read("xl/worksheets/sheet1.xml")

    m_merge_cells = re.search(rb'<mergeCells count="([0-9]+)"', v_xml_sheet)
    n_regions = int(m_merge_cells.group(1)) if m_merge_cells else 0
    if n_regions != n_regions_expected:
        raise ValueError(
            f"Merged region mismatch: expected={n_regions_expected}, got={n_regions}."
        )


def run_one_write(
    *, df: pl.DataFrame, scenario: MergeBenchmarkScenario, path_xlsx_out: Path
) -> float:
    l_cols_merged = [_col for _col in df.columns if _col.startswith("key_")]
    subfooter = (
        SpecSubFooter(
            funcs_by_col={
                _col: "sum" for _col in df.columns if _col.startswith("value_")
            }
        )
        if scenario.if_subfooter
        else None
    )

    n_t_start = perf_counter()
    with XlsxWriter(path_xlsx_out) as inst_writer:
        inst_writer.write_sheet(
            df, "benchmark", cols_merged=l_cols_merged, subfooter=subfooter
        )
    return perf_counter() - n_t_start


def benchmark_scenario(
    *,
    scenario: MergeBenchmarkScenario,
    repeat: int,
    warmup: int,
    path_dir_tmp: Path,
) -> MergeBenchmarkStats:
    df = build_dataframe(scenario)
    n_regions_expected = count_expected_regions(scenario)

    l_times_seconds: list[float] = []
    l_output_size_bytes: list[int] = []
    for n_idx in range(warmup + repeat):
        b_warmup = n_idx < warmup
        path_file_out = path_dir_tmp / f"{scenario.name}_{n_idx}.xlsx"
        n_elapsed = run_one_write(
            df=df, scenario=scenario, path_xlsx_out=path_file_out
        )
        validate_xlsx_output(
            path_xlsx_out=path_file_out, n_regions_expected=n_regions_expected
        )
        if not b_warmup:
            l_times_seconds.append(n_elapsed)
            l_output_size_bytes.append(path_file_out.stat().st_size)
        path_file_out.unlink(missing_ok=True)

    return MergeBenchmarkStats(
        scenario=scenario,
        n_regions_expected=n_regions_expected,
        repeats=repeat,
        warmup_runs=warmup,
        times_seconds=l_times_seconds,
        mean_seconds=statistics.mean(l_times_seconds),
        median_seconds=statistics.median(l_times_seconds),
        min_seconds=min(l_times_seconds),
        max_seconds=max(l_times_seconds),
        stdev_seconds=(
            statistics.stdev(l_times_seconds) if len(l_times_seconds) > 1 else 0.0
        ),
        output_size_bytes_mean=round(statistics.mean(l_output_size_bytes)),
    )


def render_markdown_summary(payload: dict[str, object]) -> str:
    l_scenarios = payload["scenarios"]
    assert isinstance(l_scenarios, list)

    l_lines = [
        "# Merged Export Benchmark Record",
        "",
        f"- Timestamp (UTC): `{payload['timestamp_utc']}`",
        f"- Command: `{payload['command']}`",
        f"- Platform: `{payload['platform']}`",
        f"- Python: `{payload['python_version']}`",
        f"- querybook: `{payload['packages']['querybook']}`",
        f"- polars: `{payload['packages']['polars']}`",
        "",
        "| scenario | rows | merged cols | run | regions | repeat | median_s | mean_s | min_s | max_s | mean_size_mb |",
        "| --- | ---: | ---: | ---: | ---: | ---: | ---: | ---: | ---: | ---: | ---: |",
    ]
    for item in l_scenarios:
        assert isinstance(item, dict)
        cfg = item["scenario"]
        n_size_mb = float(item["output_size_bytes_mean"]) / (1024 * 1024)
        l_lines.append(
            "| "
            f"{cfg['name']} | {cfg['n_rows']} | {cfg['n_merged_cols']} | "
            f"{cfg['len_run']} | {item['n_regions_expected']} | {item['repeats']} | "
            f"{item['median_seconds']:.3f} | {item['mean_seconds']:.3f} | "
            f"{item['min_seconds']:.3f} | {item['max_seconds']:.3f} | {n_size_mb:.2f} |"
        )
    return "\n".join(l_lines) + "\n"


def main() -> int:
    args = parse_args()
    if args.repeat < 1:
        raise ValueError("--repeat must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")

    args.out_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc)
    c_timestamp_compact = ts.strftime("%Y%m%dT%H%M%SZ")

    with tempfile.TemporaryDirectory(prefix="querybook_xlsx_bench_") as c_dir_tmp:
        l_stats = [
            benchmark_scenario(
                scenario=cfg_scenario,
                repeat=args.repeat,
                warmup=args.warmup,
                path_dir_tmp=Path(c_dir_tmp),
            )
            for cfg_scenario in build_scenarios(args.profile)
        ]

    payload = {
        "timestamp_utc": ts.isoformat(),
        "command": " ".join(sys.argv),
        "platform": platform.platform(),
        "python_version": sys.version.split()[0],
        "packages": {
            "querybook": detect_querybook_version(),
            "polars": pl.__version__,
        },
        "repeat": args.repeat,
        "warmup": args.warmup,
        "profile": args.profile,
        "scenarios": [asdict(item) for item in l_stats],
    }

    path_file_json = args.out_dir / f"xlsx_writer_{c_timestamp_compact}.json"
    path_file_md = args.out_dir / f"xlsx_writer_{c_timestamp_compact}.md"
    path_file_json.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8"
    )
    path_file_md.write_text(render_markdown_summary(payload), encoding="utf-8")

    print(path_file_json)
    print(path_file_md)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

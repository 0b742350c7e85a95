#!/usr/bin/env python3
"""
Sentencing Severity Analysis - Main Analysis Script

This script ranks sentencing judges by a composite severity metric and
tests whether named judges sentence significantly more severely than
their peers.

Usage:
    python main.py                                   # Full pipeline
    python main.py --collect                         # Download and preprocess only
    python main.py --analyze                         # Median table and ranking only
    python main.py --test --judges "Name A" "Name B" # Significance tests
    python main.py --retention-list ballot.txt       # Retention-ballot sub-table
    python main.py --n-bootstrap 1000 --seed 7       # Smaller bootstrap
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from sentencing_severity_analysis.src.data_acquisition import SentencingDataLoader
from sentencing_severity_analysis.src.preprocessing import SentencingDataPreprocessor
from sentencing_severity_analysis.src.analysis import SentencingSeverityAnalyzer
from sentencing_severity_analysis.src.significance import JudgeSignificanceTester
from sentencing_severity_analysis.src.visualization import SeverityVisualizer
from sentencing_severity_analysis.src.report_generator import ReportGenerator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

N_TESTED_JUDGES = 5


def setup_directories(data_dir: str = "data", output_dir: str = "output") -> dict:
    """Create necessary directories for the analysis."""
    dirs = {
        "data_raw": f"{data_dir}/raw",
        "data_processed": f"{data_dir}/processed",
        "data_cache": f"{data_dir}/cache",
        "output_figures": f"{output_dir}/figures",
        "output_reports": f"{output_dir}/reports",
    }
    for path in dirs.values():
        Path(path).mkdir(parents=True, exist_ok=True)
    return dirs


def load_name_list(path: Optional[str]) -> List[str]:
    """Read judge names, one per line; blank lines and # comments are skipped."""
    if not path:
        return []
    with open(path, "r", encoding="utf-8") as f:
        return [
            line.rstrip("\n")
            for line in f
            if line.strip() and not line.lstrip().startswith("#")
        ]


def collect_data(
    dirs: dict, force: bool = False, primary_charges_only: bool = True
) -> pd.DataFrame:
    """
    Download, load and preprocess the sentencing dataset.

    Args:
        dirs: Directory mapping from setup_directories().
        force: Re-download even if the raw file exists.
        primary_charges_only: Keep only primary-charge rows.

    Returns:
        Preprocessed sentencing DataFrame.
    """
    logger.info("Collecting sentencing data...")
    loader = SentencingDataLoader(data_dir=dirs["data_raw"])
    raw = loader.fetch(force=force)

    preprocessor = SentencingDataPreprocessor(primary_charges_only=primary_charges_only)
    sentencing = preprocessor.preprocess(raw)
    preprocessor.save_processed_data(sentencing, dirs["data_processed"])
    return sentencing


def run_analysis(
    sentencing: pd.DataFrame, min_cases: int
) -> SentencingSeverityAnalyzer:
    """
    Compute the median table and the judge severity ranking.

    Args:
        sentencing: Preprocessed sentencing DataFrame.
        min_cases: Minimum cases for a judge to be ranked.

    Returns:
        Analyzer instance with results.
    """
    logger.info("Running severity analysis...")
    analyzer = SentencingSeverityAnalyzer(sentencing, min_cases=min_cases)
    print()
    print(analyzer.generate_text_report())
    print()
    return analyzer


def select_judges(
    ranking: pd.DataFrame,
    requested: List[str],
    retention: pd.DataFrame,
    n: int = N_TESTED_JUDGES,
) -> List[str]:
    """Judges to test: those requested, else the top retention judges, else the top ranked."""
    if requested:
        return requested
    source = retention if not retention.empty else ranking
    return source.dropna(subset=["severity_score"])["judge"].head(n).tolist()


def run_significance_tests(
    analyzer: SentencingSeverityAnalyzer,
    judges: List[str],
    bootstrap_judge: Optional[str],
    n_bootstrap: int,
    seed: int,
    cache_dir: str,
):
    """
    Fit the regression models for each judge and bootstrap one of them.

    Returns:
        Tuple of (tester, results DataFrame, BootstrapResult or None).
    """
    logger.info("Testing %d judges: %s", len(judges), ", ".join(judges))
    tester = JudgeSignificanceTester(analyzer.flagged_records(), name_key=analyzer.name_key)
    results = tester.test_judges(judges)

    if not results.empty:
        print(f"\n{'='*60}")
        print("SIGNIFICANCE TESTS (judge coefficient)")
        print(f"{'='*60}")
        for _, row in results.iterrows():
            status = f"degenerate ({row['message']})" if row["degenerate"] else (
                f"coef={row['coefficient']:.4f} p={row['p_value']:.4g}"
            )
            print(f"  {row['judge']} | {row['family']:5} | {row['response']}: {status}")
        print()

    bootstrap_result = None
    bootstrap_judge = bootstrap_judge or (judges[0] if judges else None)
    if bootstrap_judge and n_bootstrap > 0:
        bootstrap_result = tester.bootstrap(
            bootstrap_judge, "severe", n_resamples=n_bootstrap, seed=seed,
            cache_dir=cache_dir,
        )
        print(
            f"Bootstrap CI: [{bootstrap_result.ci_lower:.4f}, {bootstrap_result.ci_upper:.4f}]  "
            f"Robust CI: [{bootstrap_result.robust_ci_lower:.4f}, "
            f"{bootstrap_result.robust_ci_upper:.4f}]"
        )

    return tester, results, bootstrap_result


def create_visualizations(
    analyzer: SentencingSeverityAnalyzer,
    output_dir: str,
    tester: Optional[JudgeSignificanceTester] = None,
    bootstrap_result=None,
) -> None:
    """Create the ranking, residual Q-Q and bootstrap figures."""
    logger.info("Creating visualizations...")
    residuals = None
    if tester is not None and bootstrap_result is not None:
        fitted = tester.fitted_models.get((bootstrap_result.judge, bootstrap_result.response))
        if fitted is not None:
            residuals = fitted.resid

    viz = SeverityVisualizer()
    viz.create_analysis_dashboard(
        ranking=analyzer.severity_ranking(),
        residuals=residuals,
        bootstrap_result=bootstrap_result,
        output_dir=output_dir,
    )


def generate_reports(
    analyzer: SentencingSeverityAnalyzer,
    output_dir: str,
    retention: Optional[pd.DataFrame] = None,
    tester: Optional[JudgeSignificanceTester] = None,
    results: Optional[pd.DataFrame] = None,
    bootstrap_result=None,
) -> None:
    """Write ranking tables, regression reports and the summary."""
    logger.info("Generating reports...")
    report_gen = ReportGenerator(output_dir=output_dir)

    ranking = analyzer.severity_ranking()
    report_gen.save_ranking_table(ranking)
    report_gen.save_median_table(analyzer.median_table())
    if retention is not None:
        report_gen.save_retention_table(retention)

    if tester is not None and tester.results:
        report_gen.save_significance_results(results)
        report_gen.generate_batch_reports(tester.results)

    report_gen.generate_summary(
        median_table=analyzer.median_table(),
        ranking=ranking,
        retention=retention,
        name_variants=analyzer.name_variants(),
        bootstrap_result=bootstrap_result,
        n_records=len(analyzer.sentencing),
        min_cases=analyzer.min_cases,
    )
    report_gen.generate_methodology_doc()
    logger.info("Reports saved to %s/", output_dir)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Sentencing Severity Analysis - judge ranking and significance tests"
    )
    parser.add_argument("--data-dir", type=str, default="data",
                        help="Base data directory (default: data)")
    parser.add_argument("--output-dir", type=str, default="output",
                        help="Base output directory (default: output)")
    parser.add_argument("--force-download", action="store_true",
                        help="Re-download the dataset even if cached")
    parser.add_argument("--all-charges", action="store_true",
                        help="Keep every charge row, not only primary charges")
    parser.add_argument("--min-cases", type=int,
                        default=SentencingSeverityAnalyzer.MIN_CASES,
                        help="Minimum cases for a judge to be ranked (default: 500)")
    parser.add_argument("--retention-list", type=str, default=None,
                        help="Text file of retention-ballot judge names, one per line")
    parser.add_argument("--judges", nargs="+", default=[],
                        help="Judge names to test (default: top five ranked)")
    parser.add_argument("--bootstrap-judge", type=str, default=None,
                        help="Judge whose severe-sentence model is bootstrapped "
                             "(default: first tested judge)")
    parser.add_argument("--n-bootstrap", type=int, default=5000,
                        help="Number of bootstrap resamples (default: 5000)")
    parser.add_argument("--seed", type=int, default=42,
                        help="Bootstrap random seed (default: 42)")
    parser.add_argument("--collect", action="store_true",
                        help="Download and preprocess data only")
    parser.add_argument("--analyze", action="store_true",
                        help="Compute the median table and ranking")
    parser.add_argument("--test", action="store_true",
                        help="Run significance tests and the bootstrap")
    parser.add_argument("--report", action="store_true",
                        help="Generate reports")
    parser.add_argument("--visualize", action="store_true",
                        help="Create visualizations")
    parser.add_argument("--full", action="store_true",
                        help="Run the full pipeline")

    args = parser.parse_args()

    # Default: if no specific action, run full pipeline
    run_all = args.full or not any(
        [args.collect, args.analyze, args.test, args.report, args.visualize]
    )

    dirs = setup_directories(args.data_dir, args.output_dir)
    logger.info("Starting Sentencing Severity Analysis")

    # Collect
    sentencing = None
    if not (args.collect or run_all or args.force_download):
        sentencing = SentencingDataPreprocessor.load_processed_data(dirs["data_processed"])
    if sentencing is None:
        sentencing = collect_data(
            dirs, force=args.force_download, primary_charges_only=not args.all_charges
        )
    if args.collect and not run_all:
        logger.info("Data collection complete")
        return

    # Analyze
    analyzer = run_analysis(sentencing, args.min_cases)
    retention_names = load_name_list(args.retention_list)
    retention = analyzer.retention_subset(retention_names) if retention_names else None

    # Significance tests
    tester, results, bootstrap_result = None, None, None
    if args.test or run_all:
        judges = select_judges(
            analyzer.severity_ranking(),
            args.judges,
            retention if retention is not None else pd.DataFrame(),
        )
        tester, results, bootstrap_result = run_significance_tests(
            analyzer,
            judges,
            args.bootstrap_judge,
            args.n_bootstrap,
            args.seed,
            dirs["data_cache"],
        )

    # Visualize
    if args.visualize or run_all:
        create_visualizations(analyzer, dirs["output_figures"], tester, bootstrap_result)

    # Reports
    if args.report or args.analyze or run_all:
        generate_reports(
            analyzer, dirs["output_reports"], retention, tester, results, bootstrap_result
        )

    logger.info("Analysis complete!")


if __name__ == "__main__":
    main()

"""
Report Generator Module for Sentencing Severity Analysis.

Writes the ranked judge tables as CSV and the analysis summary,
per-judge regression reports and methodology notes as Markdown.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

logger = logging.getLogger(__name__)


def _sanitize_for_filename(text: str) -> str:
    """
    Sanitize text for use in filenames to prevent path traversal.

    Args:
        text: Input text to sanitize.

    Returns:
        Sanitized text safe for use in filenames.
    """
    if not text:
        return "unknown"
    text = text.replace("/", "_").replace("\\", "_").replace("..", "_")
    text = re.sub(r"[^a-zA-Z0-9_-]", "_", text)
    text = text.lstrip(". ")
    text = re.sub(r"_+", "_", text).strip("_")
    return text[:255] if text else "unknown"


def _fmt(value: Any, spec: str = ".3f") -> str:
    """Format a number, showing undefined values as N/A."""
    if value is None or pd.isna(value):
        return "N/A"
    return format(value, spec)


class ReportGenerator:
    """
    Generates the output artifacts of the severity analysis.

    Outputs:
    - Ranked judge table and retention-ballot sub-table (CSV)
    - Median sentence table and significance results (CSV)
    - Summary report, per-judge regression reports, methodology (Markdown)
    """

    RANKING_COLUMNS = ["judge", "pct_above_median", "pct_class4_custody", "severity_score"]

    def __init__(self, output_dir: str = "output/reports"):
        """
        Initialize the report generator.

        Args:
            output_dir: Directory to write report files.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _write_text(self, filename: str, text: str) -> Path:
        filepath = self.output_dir / filename
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info("Saved %s", filepath)
        return filepath

    # ==================== Tables ====================

    def save_ranking_table(
        self, ranking: pd.DataFrame, filename: str = "judge_severity_ranking.csv"
    ) -> Path:
        """
        Save the ranked judge table.

        Undefined ratios are written as empty fields, never as zero.
        """
        filepath = self.output_dir / filename
        ranking[self.RANKING_COLUMNS].to_csv(filepath, index=False, na_rep="")
        logger.info("Saved ranking of %d judges to %s", len(ranking), filepath)
        return filepath

    def save_retention_table(
        self, retention: pd.DataFrame, filename: str = "retention_judges.csv"
    ) -> Path:
        return self.save_ranking_table(retention, filename)

    def save_median_table(
        self, median_table: Mapping[str, float], filename: str = "median_sentence_by_class.csv"
    ) -> Path:
        filepath = self.output_dir / filename
        pd.DataFrame(
            {"felony_class": list(median_table), "median_years": list(median_table.values())}
        ).to_csv(filepath, index=False, na_rep="")
        logger.info("Saved median table to %s", filepath)
        return filepath

    def save_significance_results(
        self, results: pd.DataFrame, filename: str = "significance_results.csv"
    ) -> Path:
        filepath = self.output_dir / filename
        results.to_csv(filepath, index=False, na_rep="")
        logger.info("Saved %d model results to %s", len(results), filepath)
        return filepath

    # ==================== Markdown Reports ====================

    @staticmethod
    def _model_table(results: List[Any]) -> List[str]:
        lines = [
            "| Model | N | Coefficient | Robust SE | p-value | 95% CI | Significant | Note |",
            "|-------|---|-------------|-----------|---------|--------|-------------|------|",
        ]
        for r in results:
            if r.degenerate:
                lines.append(
                    f"| {r.label or r.response} | {r.n_obs} | degenerate | | | | | {r.message} |"
                )
                continue
            lines.append(
                f"| {r.label or r.response} | {r.n_obs} | {_fmt(r.coefficient, '.4f')} | "
                f"{_fmt(r.std_error, '.4f')} | {_fmt(r.p_value, '.4g')} | "
                f"[{_fmt(r.ci_lower, '.4f')}, {_fmt(r.ci_upper, '.4f')}] | "
                f"{'Yes' if r.significant else 'No'} | {r.message} |"
            )
        return lines

    def generate_judge_report(self, judge: str, results: List[Any]) -> str:
        """
        Generate the regression report for one judge.

        Args:
            judge: Judge name as recorded.
            results: ModelResult objects for this judge.

        Returns:
            Markdown-formatted report string.
        """
        lines = [
            f"# Significance Tests: {judge}",
            "",
            f"**Generated**: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}",
            "",
            "Each model regresses a severity indicator on an indicator for this judge,",
            "controlling for sentence date and sentence-year fixed effects.",
            "",
        ]

        for family, heading in [
            ("ols", "Linear Probability Models (HC1 robust standard errors)"),
            ("logit", "Logistic Models"),
        ]:
            family_results = [r for r in results if r.family == family]
            if not family_results:
                continue
            lines.extend([f"## {heading}", ""])
            lines.extend(self._model_table(family_results))
            lines.append("")

            for r in family_results:
                if r.summary_text:
                    lines.extend([
                        f"### {r.label or r.response} ({family.upper()})",
                        "",
                        "```",
                        r.summary_text,
                        "```",
                        "",
                    ])

        report = "\n".join(lines)
        self._write_text(f"judge_{_sanitize_for_filename(judge)}.md", report)
        return report

    def generate_batch_reports(self, results: List[Any]) -> List[str]:
        """Generate one regression report per judge present in ``results``."""
        by_judge: Dict[str, List[Any]] = {}
        for r in results:
            by_judge.setdefault(r.judge, []).append(r)

        filepaths = []
        for judge, judge_results in by_judge.items():
            self.generate_judge_report(judge, judge_results)
            filepaths.append(
                str(self.output_dir / f"judge_{_sanitize_for_filename(judge)}.md")
            )
        logger.info("Generated %d judge reports", len(filepaths))
        return filepaths

    def generate_summary(
        self,
        median_table: Mapping[str, float],
        ranking: pd.DataFrame,
        retention: Optional[pd.DataFrame] = None,
        name_variants: Optional[pd.DataFrame] = None,
        bootstrap_result: Optional[Any] = None,
        n_records: Optional[int] = None,
        min_cases: int = 500,
        top_n: int = 20,
    ) -> str:
        """
        Generate the analysis summary report.

        Returns:
            Markdown-formatted report string.
        """
        lines = [
            "# Sentencing Severity Analysis",
            "",
            f"**Generated**: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}",
            "",
            "---",
            "",
            "## Overview",
            "",
        ]
        if n_records is not None:
            lines.append(f"- **Sentencing Records**: {n_records}")
        lines.extend([
            f"- **Judges Ranked** (>= {min_cases} cases): {len(ranking)}",
            "",
            "## Median Custodial Sentence by Felony Class",
            "",
            "| Class | Median (years) |",
            "|-------|----------------|",
        ])
        for felony_class, median in median_table.items():
            lines.append(f"| {felony_class} | {_fmt(median, '.2f')} |")
        lines.append("")

        lines.extend(self._ranking_section("Severity Ranking", ranking.head(top_n)))

        if retention is not None:
            lines.extend(self._ranking_section("Judges on the Retention Ballot", retention))

        if bootstrap_result is not None:
            b = bootstrap_result
            lines.extend([
                "## Bootstrap Cross-Check",
                "",
                f"- **Judge**: {b.judge}",
                f"- **Model**: {b.response} (OLS)",
                f"- **Resamples**: {b.n_resamples} (seed {b.seed})",
                f"- **Coefficient**: {_fmt(b.coefficient, '.4f')}",
                f"- **Bootstrap 95% CI**: [{_fmt(b.ci_lower, '.4f')}, {_fmt(b.ci_upper, '.4f')}]",
                f"- **Robust 95% CI**: [{_fmt(b.robust_ci_lower, '.4f')}, "
                f"{_fmt(b.robust_ci_upper, '.4f')}]",
                f"- **Largest bound difference**: {_fmt(b.bound_gap, '.4f')}",
                "",
            ])

        if name_variants is not None and not name_variants.empty:
            lines.extend([
                "## Possible Judge Name Variants",
                "",
                "These spellings were counted as separate judges.",
                "",
            ])
            for _, row in name_variants.iterrows():
                lines.append("- " + " / ".join(f"`{v}`" for v in row["variants"]))
            lines.append("")

        lines.extend([
            "---",
            "",
            ("**Disclaimer**: Findings are statistical patterns in publicly available "
             "sentencing records and do not account for case facts not captured in "
             "the data."),
            "",
        ])

        report = "\n".join(lines)
        self._write_text("summary.md", report)
        return report

    @staticmethod
    def _ranking_section(title: str, ranking: pd.DataFrame) -> List[str]:
        lines = [
            f"## {title}",
            "",
            "| Rank | Judge | Cases | % Above Median | % Class 4 to Custody | Score |",
            "|------|-------|-------|----------------|----------------------|-------|",
        ]
        for _, row in ranking.iterrows():
            lines.append(
                f"| {row.get('rank', '')} | {row['judge']} | {row.get('total_cases', '')} | "
                f"{_fmt(row['pct_above_median'], '.1%')} | "
                f"{_fmt(row['pct_class4_custody'], '.1%')} | "
                f"{_fmt(row['severity_score'], '.3f')} |"
            )
        lines.append("")
        return lines

    def generate_methodology_doc(self) -> str:
        """
        Generate methodology documentation.

        Returns:
            Markdown methodology document.
        """
        doc = """# Methodology: Sentencing Severity Analysis

## Data Source

Cook County State's Attorney sentencing extract (Cook County open data
portal). Only primary-charge rows are used, so each row is one sentencing
event.

## Sentence Length

Commitment terms are converted to years: Year(s) x 1, Months / 12,
Weeks / 52, Days / 365. Natural life sentences are set to 100 years.
Other units (dollars, pounds, "Term") have no length and are excluded
from any computation that needs one.

## Median Table

For each felony class (1, 2, 3, 4, X), the median length of Prison and
Jail sentences. Other classes are excluded from the ranking.

## Severity Metric

- **Above median**: a custody sentence longer than its class median.
- **Class 4 to custody**: a class 4 felony that did not end in probation.
- **Severity score**: mean of the share of custody sentences above the
  median and the share of class 4 felonies sentenced to custody. Undefined
  when either share is undefined.

Only Prison, Jail and Probation sentences are counted. Judges with fewer
than 500 such cases are not ranked.

## Significance Tests

For each tested judge, OLS (HC1 robust standard errors) and Logit models
of each indicator on a judge indicator, sentence date and sentence-year
fixed effects. One OLS coefficient is bootstrapped (5000 resamples) and
its percentile interval compared with the robust interval.

## Limitations

1. Judge names are used as recorded; spelling variants are counted as
   different judges and flagged in the summary.
2. Case facts and criminal history are not in the data.
3. A judge with no class 4 cases has no severity score.
"""
        self._write_text("methodology.md", doc)
        return doc

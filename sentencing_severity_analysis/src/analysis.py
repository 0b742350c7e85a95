"""
Analysis Module for Sentencing Severity Analysis.

Computes per-felony-class median custodial sentence lengths, derives
per-record severity indicators, aggregates them per judge and ranks judges
by a composite severity score.
"""

import logging
import re
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

FELONY_CLASSES = ("1", "2", "3", "4", "X")
CUSTODY_TYPES = ("Prison", "Jail")
QUALIFYING_TYPES = ("Prison", "Jail", "Probation")


# ==================== Judge Identity ====================

def exact_judge_key(name: Any) -> Any:
    """Identity key: judge names are compared exactly as recorded."""
    return name


def loose_judge_key(name: Any) -> str:
    """
    Collapse case, whitespace, punctuation and token order.

    The pipeline uses it only to flag spelling variants; passing it as a
    ``name_key`` would merge them.
    """
    if not isinstance(name, str):
        return ""
    tokens = re.sub(r"[^a-z\s]", " ", name.lower()).split()
    return " ".join(sorted(tokens))


def judge_names_match(
    a: Any, b: Any, key: Callable[[Any], Any] = exact_judge_key
) -> bool:
    """Return True when two judge names denote the same judge under ``key``."""
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return key(a) == key(b)


def find_name_variants(names: Iterable[str]) -> pd.DataFrame:
    """
    Find distinct judge spellings that look like the same person.

    Args:
        names: Judge names as recorded.

    Returns:
        DataFrame with one row per group of two or more spellings sharing
        a loose key (columns: loose_key, variants, n_variants).
    """
    groups: Dict[str, List[str]] = {}
    for name in pd.unique(pd.Series(list(names), dtype=object).dropna()):
        key = loose_judge_key(name)
        if key:
            groups.setdefault(key, []).append(name)

    rows = [
        {"loose_key": key, "variants": sorted(variants), "n_variants": len(variants)}
        for key, variants in groups.items()
        if len(variants) > 1
    ]
    return pd.DataFrame(rows, columns=["loose_key", "variants", "n_variants"])


# ==================== Cohort Filter & Median Table ====================

def custody_mask(df: pd.DataFrame) -> pd.Series:
    return df["sentence_type"].isin(CUSTODY_TYPES)


def qualifying_records(df: pd.DataFrame) -> pd.DataFrame:
    """
    Records eligible for ranking: Prison/Jail/Probation sentences on a
    felony class in 1, 2, 3, 4 or X.
    """
    mask = df["sentence_type"].isin(QUALIFYING_TYPES) & df["felony_class"].isin(
        FELONY_CLASSES
    )
    return df[mask].reset_index(drop=True)


def compute_median_table(df: pd.DataFrame) -> Mapping[str, float]:
    """
    Compute the median custodial sentence (years) per felony class.

    The cohort for class ``c`` is every record with felony class ``c`` and
    a Prison or Jail sentence. Undefined sentence lengths are skipped.

    Returns:
        Read-only mapping with exactly one entry per felony class; a class
        with an empty cohort maps to NaN.
    """
    custody = df[custody_mask(df)]
    table = {}
    for felony_class in FELONY_CLASSES:
        lengths = custody.loc[
            custody["felony_class"].isin([felony_class]), "converted_sentence"
        ].dropna()
        table[felony_class] = float(lengths.median()) if len(lengths) else np.nan
        logger.debug(
            "Class %s median over %d custody sentences: %s",
            felony_class,
            len(lengths),
            table[felony_class],
        )
    return MappingProxyType(table)


# ==================== Severity Metric Engine ====================

def flag_records(df: pd.DataFrame, median_table: Mapping[str, float]) -> pd.DataFrame:
    """
    Add per-record severity indicators to a copy of the frame.

    Columns added: is_custody, is_class4, above_median,
    is_class4_to_custody, severe.
    """
    out = df.copy()
    class_median = (
        out["felony_class"].astype(object).map(dict(median_table)).astype(float)
    )
    converted = out["converted_sentence"].astype(float)

    out["is_custody"] = custody_mask(out).astype(bool)
    out["is_class4"] = out["felony_class"].isin(["4"]).astype(bool)
    out["above_median"] = out["is_custody"] & (converted > class_median).fillna(False)
    out["is_class4_to_custody"] = out["is_class4"] & ~out["sentence_type"].isin(
        ["Probation"]
    )
    out["severe"] = out["above_median"] | out["is_class4_to_custody"]
    return out


def _safe_ratio(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Divide, leaving NaN (not zero) where the denominator is zero."""
    return numerator.astype(float) / denominator.where(denominator > 0).astype(float)


def aggregate_by_judge(
    flagged: pd.DataFrame, name_key: Callable[[Any], Any] = exact_judge_key
) -> pd.DataFrame:
    """
    Sum severity indicators per judge and derive the composite score.

    Args:
        flagged: Qualifying records with indicator columns from
            ``flag_records``.
        name_key: Function mapping a recorded judge name to its identity.

    Returns:
        DataFrame with one row per judge, in order of first appearance.
    """
    df = flagged.copy()
    df["judge"] = df["sentence_judge"].map(name_key)
    for felony_class in ("1", "2", "3", "4"):
        df[f"is_class{felony_class}"] = df["felony_class"].isin([felony_class])

    agg = (
        df.groupby("judge", sort=False)
        .agg(
            total_cases=("is_custody", "size"),
            custody_cases=("is_custody", "sum"),
            above_median_cases=("above_median", "sum"),
            class_1_cases=("is_class1", "sum"),
            class_2_cases=("is_class2", "sum"),
            class_3_cases=("is_class3", "sum"),
            class_4_cases=("is_class4", "sum"),
            class4_custody_cases=("is_class4_to_custody", "sum"),
        )
        .reset_index()
    )
    count_cols = [c for c in agg.columns if c.endswith("_cases")]
    agg[count_cols] = agg[count_cols].astype(int)

    agg["pct_above_median"] = _safe_ratio(agg["above_median_cases"], agg["custody_cases"])
    agg["pct_class4_custody"] = _safe_ratio(
        agg["class4_custody_cases"], agg["class_4_cases"]
    )
    # NaN in either component propagates to the score
    agg["severity_score"] = (agg["pct_above_median"] + agg["pct_class4_custody"]) / 2
    return agg


def rank_judges(aggregates: pd.DataFrame, min_cases: int = 500) -> pd.DataFrame:
    """
    Drop judges under the case floor and sort by severity score.

    The sort is stable; judges with an undefined score are listed last.
    """
    eligible = aggregates[aggregates["total_cases"] >= min_cases]
    ranking = eligible.sort_values(
        "severity_score", ascending=False, kind="mergesort", na_position="last"
    ).reset_index(drop=True)
    ranking.insert(0, "rank", np.arange(1, len(ranking) + 1))
    logger.info(
        "Ranked %d of %d judges with at least %d cases",
        len(ranking),
        len(aggregates),
        min_cases,
    )
    return ranking


def filter_by_names(
    ranking: pd.DataFrame,
    names: Iterable[str],
    key: Callable[[Any], Any] = exact_judge_key,
) -> pd.DataFrame:
    """Return ranking rows whose judge matches any of ``names``."""
    names = list(names)
    mask = ranking["judge"].apply(
        lambda judge: any(judge_names_match(judge, n, key) for n in names)
    )
    return ranking[mask].reset_index(drop=True)


class SentencingSeverityAnalyzer:
    """
    Runs the severity pipeline over preprocessed sentencing records.

    Stages:
    - Median custodial sentence per felony class
    - Per-record severity indicators
    - Per-judge aggregation and composite severity score
    - Ranking of judges above the case-count floor

    Each stage is computed once and cached; cached frames are never
    modified in place.
    """

    MIN_CASES = 500

    def __init__(
        self,
        sentencing_df: Optional[pd.DataFrame] = None,
        min_cases: int = MIN_CASES,
        name_key: Callable[[Any], Any] = exact_judge_key,
    ):
        """
        Initialize the analyzer.

        Args:
            sentencing_df: Output of ``SentencingDataPreprocessor.preprocess``.
            min_cases: Minimum qualifying cases for a judge to be ranked.
            name_key: Judge identity function used for grouping and
                name matching.
        """
        self.sentencing = sentencing_df if sentencing_df is not None else pd.DataFrame()
        self.min_cases = min_cases
        self.name_key = name_key
        self._cache: Dict[str, Any] = {}

    def median_table(self) -> Mapping[str, float]:
        if "median_table" not in self._cache:
            self._cache["median_table"] = compute_median_table(self.sentencing)
        return self._cache["median_table"]

    def flagged_records(self) -> pd.DataFrame:
        """Qualifying records with severity indicator columns."""
        if "flagged_records" not in self._cache:
            qualifying = qualifying_records(self.sentencing)
            self._cache["flagged_records"] = flag_records(qualifying, self.median_table())
            logger.info(
                "Flagged %d qualifying records of %d",
                len(qualifying),
                len(self.sentencing),
            )
        return self._cache["flagged_records"]

    def judge_aggregates(self) -> pd.DataFrame:
        if "judge_aggregates" not in self._cache:
            self._cache["judge_aggregates"] = aggregate_by_judge(
                self.flagged_records(), self.name_key
            )
        return self._cache["judge_aggregates"]

    def severity_ranking(self) -> pd.DataFrame:
        if "severity_ranking" not in self._cache:
            self._cache["severity_ranking"] = rank_judges(
                self.judge_aggregates(), self.min_cases
            )
        return self._cache["severity_ranking"]

    def retention_subset(self, names: Iterable[str]) -> pd.DataFrame:
        """Ranking rows for judges on a name list (e.g. a retention ballot)."""
        return filter_by_names(self.severity_ranking(), names, self.name_key)

    def name_variants(self) -> pd.DataFrame:
        """Flag judge spellings that may refer to the same person."""
        if self.sentencing.empty:
            return find_name_variants([])
        variants = find_name_variants(self.sentencing["sentence_judge"])
        if not variants.empty:
            logger.warning(
                "%d judge names have spelling variants; they are counted separately",
                len(variants),
            )
        return variants

    def generate_text_report(self, top_n: int = 10) -> str:
        """Format the median table and the top of the ranking as text."""
        if self.sentencing.empty:
            return "No data available for report generation."

        lines = [
            "=" * 70,
            "SENTENCING SEVERITY ANALYSIS",
            "=" * 70,
            "",
            "## Median Custodial Sentence (years)",
        ]
        for felony_class, median in self.median_table().items():
            lines.append(f"  Class {felony_class}: {_fmt(median)}")
        lines.append("")

        ranking = self.severity_ranking()
        lines.append(f"## Most Severe Judges (>= {self.min_cases} cases)")
        for _, row in ranking.head(top_n).iterrows():
            lines.append(
                f"  {row['rank']:>3}. {row['judge']}: "
                f"score={_fmt(row['severity_score'])} "
                f"above_median={_fmt(row['pct_above_median'])} "
                f"class4_custody={_fmt(row['pct_class4_custody'])}"
            )
        return "\n".join(lines)


def _fmt(value: float) -> str:
    return "N/A" if pd.isna(value) else f"{value:.3f}"

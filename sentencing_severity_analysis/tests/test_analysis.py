"""Tests for the analysis module."""

import pytest
import numpy as np
import pandas as pd

from sentencing_severity_analysis.src.analysis import (
    FELONY_CLASSES,
    SentencingSeverityAnalyzer,
    aggregate_by_judge,
    compute_median_table,
    filter_by_names,
    find_name_variants,
    flag_records,
    judge_names_match,
    loose_judge_key,
    qualifying_records,
    rank_judges,
)


def make_records(rows):
    """Build a sentencing frame from (judge, class, type, years) tuples."""
    return pd.DataFrame(
        rows,
        columns=["sentence_judge", "felony_class", "sentence_type", "converted_sentence"],
    )


MEDIANS = {"1": 2.0, "2": 4.0, "3": 3.0, "4": 1.5, "X": 8.0}


@pytest.fixture
def sample_sentencing():
    """Create records for three judges across felony classes."""
    return make_records([
        ("Judge A", "1", "Prison", 3.0),
        ("Judge A", "1", "Prison", 1.0),
        ("Judge A", "4", "Prison", 2.0),
        ("Judge A", "4", "Probation", 2.0),
        ("Judge B", "1", "Jail", 5.0),
        ("Judge B", "2", "Prison", 4.0),
        ("Judge B", "2", "Probation", np.nan),
        ("Judge C", "4", "Jail", 0.5),
        ("Judge C", "4", "Probation", 2.0),
        ("Judge C", "X", "Prison", 10.0),
        ("Judge C", "3", "Conditional Discharge", 1.0),
        ("Judge C", "A", "Prison", 1.0),
    ])


class TestMedianTable:
    """Test cases for the cohort filter and median calculator."""

    def test_median_of_custody_sentences(self):
        """Test the median of class 1 custody sentences 1, 2, 3."""
        df = make_records([
            ("Judge A", "1", "Prison", 1.0),
            ("Judge A", "1", "Jail", 2.0),
            ("Judge B", "1", "Prison", 3.0),
        ])
        assert compute_median_table(df)["1"] == 2.0

    def test_probation_and_undefined_excluded(self):
        """Test that probation and undefined lengths do not enter the median."""
        df = make_records([
            ("Judge A", "1", "Prison", 1.0),
            ("Judge A", "1", "Prison", 2.0),
            ("Judge A", "1", "Prison", 3.0),
            ("Judge A", "1", "Probation", 50.0),
            ("Judge A", "1", "Prison", np.nan),
        ])
        assert compute_median_table(df)["1"] == 2.0

    def test_five_entries(self, sample_sentencing):
        """Test that the table has exactly one entry per felony class."""
        table = compute_median_table(sample_sentencing)

        assert set(table) == set(FELONY_CLASSES)
        assert "A" not in table

    def test_empty_cohort_is_nan(self):
        """Test that a class without custody sentences maps to NaN."""
        df = make_records([("Judge A", "1", "Prison", 1.0)])
        assert np.isnan(compute_median_table(df)["X"])

    def test_table_is_read_only(self, sample_sentencing):
        """Test that the median table cannot be modified."""
        table = compute_median_table(sample_sentencing)
        with pytest.raises(TypeError):
            table["1"] = 0.0

    def test_qualifying_records(self, sample_sentencing):
        """Test that other sentence types and classes are excluded."""
        result = qualifying_records(sample_sentencing)

        assert len(result) == 10
        assert set(result["sentence_type"]) == {"Prison", "Jail", "Probation"}
        assert "A" not in set(result["felony_class"])


class TestSeverityIndicators:
    """Test cases for per-record severity indicators."""

    def test_above_median_scenario(self):
        """Test two class 1 prison sentences against a median of 2."""
        df = make_records([
            ("Judge A", "1", "Prison", 3.0),
            ("Judge A", "1", "Prison", 1.0),
        ])
        agg = aggregate_by_judge(flag_records(df, MEDIANS))
        row = agg.iloc[0]

        assert row["above_median_cases"] == 1
        assert row["custody_cases"] == 2
        assert row["pct_above_median"] == 0.5

    def test_above_median_requires_custody(self, sample_sentencing):
        """Test that non-custody records are never above median."""
        flagged = flag_records(sample_sentencing, MEDIANS)

        assert not flagged.loc[~flagged["is_custody"], "above_median"].any()

    def test_above_median_requires_defined_length(self):
        """Test that an undefined length is not above median."""
        df = make_records([("Judge A", "1", "Prison", np.nan)])
        flagged = flag_records(df, MEDIANS)

        assert bool(flagged["is_custody"].iloc[0])
        assert not bool(flagged["above_median"].iloc[0])

    def test_class4_to_custody(self, sample_sentencing):
        """Test the class 4 custody indicator."""
        flagged = flag_records(sample_sentencing, MEDIANS)
        class4 = flagged[flagged["felony_class"] == "4"]

        assert class4["is_class4_to_custody"].tolist() == [True, False, True, False]
        assert not flagged.loc[flagged["felony_class"] != "4", "is_class4_to_custody"].any()

    def test_severe(self, sample_sentencing):
        """Test that severe is the union of both indicators."""
        flagged = flag_records(sample_sentencing, MEDIANS)
        expected = flagged["above_median"] | flagged["is_class4_to_custody"]

        assert (flagged["severe"] == expected).all()

    def test_flag_records_does_not_mutate_input(self, sample_sentencing):
        """Test that flagging returns a new frame."""
        flag_records(sample_sentencing, MEDIANS)
        assert "severe" not in sample_sentencing.columns


class TestJudgeAggregation:
    """Test cases for per-judge aggregation and ranking."""

    @pytest.fixture
    def aggregates(self, sample_sentencing):
        flagged = flag_records(qualifying_records(sample_sentencing), MEDIANS)
        return aggregate_by_judge(flagged).set_index("judge")

    def test_counts(self, aggregates):
        """Test summed counts per judge."""
        a = aggregates.loc["Judge A"]
        assert a["total_cases"] == 4
        assert a["custody_cases"] == 3
        assert a["above_median_cases"] == 2
        assert a["class_1_cases"] == 2
        assert a["class_4_cases"] == 2
        assert a["class4_custody_cases"] == 1

    def test_severity_is_mean_of_ratios(self, aggregates):
        """Test that the score is exactly the mean of the two ratios."""
        a = aggregates.loc["Judge A"]
        assert a["pct_above_median"] == pytest.approx(2 / 3)
        assert a["pct_class4_custody"] == pytest.approx(0.5)
        assert a["severity_score"] == pytest.approx((2 / 3 + 0.5) / 2)

    def test_no_class4_cases_is_undefined(self, aggregates):
        """Test that a judge without class 4 cases has no score."""
        b = aggregates.loc["Judge B"]
        assert b["class_4_cases"] == 0
        assert b["pct_above_median"] == pytest.approx(0.5)
        assert np.isnan(b["pct_class4_custody"])
        assert np.isnan(b["severity_score"])

    def test_zero_ratio_is_not_undefined(self):
        """Test that a ratio of exactly zero stays distinguishable from undefined."""
        df = make_records([
            ("Judge D", "1", "Prison", 1.0),
            ("Judge D", "4", "Probation", 1.0),
        ])
        agg = aggregate_by_judge(flag_records(df, MEDIANS)).iloc[0]

        assert agg["pct_above_median"] == 0.0
        assert agg["pct_class4_custody"] == 0.0
        assert agg["severity_score"] == 0.0

    def test_other_classes_do_not_change_scores(self, sample_sentencing):
        """Test that unrecognized felony classes do not affect any score."""
        extra = make_records([
            ("Judge A", "A", "Prison", 40.0),
            ("Judge B", "M", "Jail", 1.0),
            ("Judge C", "Z", "Probation", 3.0),
        ])
        base = SentencingSeverityAnalyzer(sample_sentencing, min_cases=1)
        more = SentencingSeverityAnalyzer(
            pd.concat([sample_sentencing, extra], ignore_index=True), min_cases=1
        )

        left = base.judge_aggregates().set_index("judge")["severity_score"]
        right = more.judge_aggregates().set_index("judge")["severity_score"]
        pd.testing.assert_series_equal(left, right)

    def test_rank_excludes_small_judges(self):
        """Test that judges under the case floor are never ranked."""
        aggregates = pd.DataFrame({
            "judge": ["Big", "Small"],
            "total_cases": [600, 499],
            "pct_above_median": [0.2, 1.0],
            "pct_class4_custody": [0.2, 1.0],
            "severity_score": [0.2, 1.0],
        })
        ranking = rank_judges(aggregates, min_cases=500)

        assert ranking["judge"].tolist() == ["Big"]
        assert ranking["rank"].tolist() == [1]

    def test_rank_order(self):
        """Test descending order, stable ties and undefined scores last."""
        aggregates = pd.DataFrame({
            "judge": ["P", "Q", "R", "S"],
            "total_cases": [10, 10, 10, 10],
            "severity_score": [0.3, np.nan, 0.5, 0.3],
        })
        ranking = rank_judges(aggregates, min_cases=1)

        assert ranking["judge"].tolist() == ["R", "P", "S", "Q"]


class TestJudgeNames:
    """Test cases for judge identity handling."""

    def test_exact_match(self):
        """Test that names match only when identical."""
        assert judge_names_match("John Smith", "John Smith")
        assert not judge_names_match("John Smith", "John  Smith")
        assert not judge_names_match("John Smith", "Smith, John")
        assert not judge_names_match(None, "John Smith")

    def test_custom_key(self):
        """Test that a canonicalization key can be swapped in."""
        assert judge_names_match("John Smith", "Smith, John", key=loose_judge_key)

    def test_variants_counted_separately(self):
        """Test that spelling variants are aggregated as distinct judges."""
        df = make_records([
            ("John Smith", "4", "Prison", 1.0),
            ("John  Smith", "4", "Prison", 1.0),
            ("Smith, John", "4", "Probation", 1.0),
        ])
        agg = aggregate_by_judge(flag_records(df, MEDIANS))

        assert len(agg) == 3

    def test_find_name_variants(self):
        """Test that variants are flagged without merging."""
        variants = find_name_variants(
            ["John Smith", "John  Smith", "Smith, John", "Jane Doe", "Jane Doe"]
        )

        assert len(variants) == 1
        assert variants["n_variants"].iloc[0] == 3
        assert "Smith, John" in variants["variants"].iloc[0]

    def test_filter_by_names(self):
        """Test retention-ballot filtering of the ranking."""
        ranking = pd.DataFrame({"judge": ["John Smith", "Jane Doe", "Ann Lee"],
                                "severity_score": [0.5, 0.4, 0.3]})

        result = filter_by_names(ranking, ["Jane Doe", "Nobody"])

        assert result["judge"].tolist() == ["Jane Doe"]


class TestSentencingSeverityAnalyzer:
    """Test cases for SentencingSeverityAnalyzer."""

    def test_init_empty(self):
        """Test analyzer with no data."""
        analyzer = SentencingSeverityAnalyzer()
        assert analyzer.sentencing.empty
        assert analyzer.min_cases == 500
        assert "No data available" in analyzer.generate_text_report()

    def test_pipeline(self, sample_sentencing):
        """Test the staged pipeline and caching."""
        analyzer = SentencingSeverityAnalyzer(sample_sentencing, min_cases=3)

        ranking = analyzer.severity_ranking()

        assert analyzer.severity_ranking() is ranking
        assert set(ranking["judge"]) == {"Judge A", "Judge B", "Judge C"}
        assert ranking["judge"].iloc[-1] == "Judge B"

    def test_min_cases_filter(self, sample_sentencing):
        """Test the case floor on real aggregation output."""
        analyzer = SentencingSeverityAnalyzer(sample_sentencing, min_cases=4)

        assert analyzer.severity_ranking()["judge"].tolist() == ["Judge A"]

    def test_name_key(self):
        """Test that a replacement key merges spelling variants."""
        df = make_records([
            ("John Smith", "4", "Prison", 1.0),
            ("Smith, John", "4", "Probation", 1.0),
        ])
        analyzer = SentencingSeverityAnalyzer(df, min_cases=1, name_key=loose_judge_key)

        assert len(analyzer.judge_aggregates()) == 1

    def test_retention_subset(self, sample_sentencing):
        """Test the retention-ballot sub-table."""
        analyzer = SentencingSeverityAnalyzer(sample_sentencing, min_cases=1)

        subset = analyzer.retention_subset(["Judge C", "Judge Z"])

        assert subset["judge"].tolist() == ["Judge C"]

    def test_idempotent(self, sample_sentencing):
        """Test that rerunning on the same input gives the same ranking."""
        first = SentencingSeverityAnalyzer(sample_sentencing, min_cases=1).severity_ranking()
        second = SentencingSeverityAnalyzer(sample_sentencing, min_cases=1).severity_ranking()

        pd.testing.assert_frame_equal(first, second)

    def test_generate_text_report(self, sample_sentencing):
        """Test text report generation."""
        report = SentencingSeverityAnalyzer(sample_sentencing, min_cases=1).generate_text_report()

        assert "SENTENCING SEVERITY ANALYSIS" in report
        assert "Class X" in report
        assert "N/A" in report


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

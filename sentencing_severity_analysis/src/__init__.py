"""
Sentencing Severity Analysis Package.

This package ranks sentencing judges by how severely they sentence,
relative to the median sentence for each felony class, and tests whether
named judges differ significantly from their peers.
"""

from .data_acquisition import SentencingDataLoader
from .preprocessing import SentencingDataPreprocessor
from .analysis import SentencingSeverityAnalyzer, judge_names_match
from .significance import JudgeSignificanceTester, ModelSpec
from .visualization import SeverityVisualizer
from .report_generator import ReportGenerator

__version__ = "0.1.0"
__all__ = [
    "SentencingDataLoader",
    "SentencingDataPreprocessor",
    "SentencingSeverityAnalyzer",
    "judge_names_match",
    "JudgeSignificanceTester",
    "ModelSpec",
    "SeverityVisualizer",
    "ReportGenerator",
]

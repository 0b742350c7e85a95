"""
Data Preprocessing Module for Sentencing Severity Analysis.

Normalizes raw sentencing rows: converts commitment terms expressed in
heterogeneous units to a common scale in years and parses sentence dates.
"""

import logging
import math
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class SentencingDataPreprocessor:
    """
    Preprocesses raw sentencing rows into an analysis-ready DataFrame.

    Handles:
    - Commitment unit to years conversion (``converted_sentence``)
    - Natural life sentences mapped to a fixed sentinel
    - Sentence date parsing and sentence year extraction
    - Primary charge selection (one row per sentencing event)

    Each method returns a new DataFrame; the input frame is never modified.
    """

    # Commitment unit -> years per unit. Units not listed (Pounds, Dollars,
    # Term, Hours, ...) have no defined conversion.
    UNIT_MULTIPLIERS = {
        "Year(s)": 1.0,
        "Months": 1 / 12,
        "Weeks": 1 / 52,
        "Days": 1 / 365,
    }

    NATURAL_LIFE_UNIT = "Natural Life"
    NATURAL_LIFE_YEARS = 100.0

    DATE_FORMAT = "%m/%d/%Y"

    TRUE_FLAGS = {"true", "t", "1", "yes", "y"}

    def __init__(self, primary_charges_only: bool = True):
        """
        Initialize the preprocessor.

        Args:
            primary_charges_only: Keep only rows flagged as the primary
                charge when the flag column is present.
        """
        self.primary_charges_only = primary_charges_only

    # ==================== Sentence Length ====================

    @classmethod
    def convert_sentence(cls, unit, term) -> float:
        """
        Convert a single commitment term to years.

        Args:
            unit: Commitment unit label.
            term: Commitment term magnitude (number or numeric string).

        Returns:
            Length in years, or NaN when the unit has no time conversion
            or the term is not numeric.
        """
        if not isinstance(unit, str):
            return np.nan
        if unit == cls.NATURAL_LIFE_UNIT:
            return cls.NATURAL_LIFE_YEARS
        multiplier = cls.UNIT_MULTIPLIERS.get(unit)
        if multiplier is None:
            return np.nan
        try:
            value = float(term)
        except (TypeError, ValueError):
            return np.nan
        if math.isnan(value):
            return np.nan
        return multiplier * value

    def convert_sentences(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Add ``converted_sentence`` (years) to a copy of the frame.

        Rows with unrecognized units are kept with an undefined value.
        """
        out = df.copy()
        term = pd.to_numeric(out["commitment_term"], errors="coerce")
        multiplier = out["commitment_unit"].map(self.UNIT_MULTIPLIERS)

        out["converted_sentence"] = (multiplier * term).astype(float)
        life = (out["commitment_unit"] == self.NATURAL_LIFE_UNIT).fillna(False).astype(bool)
        out.loc[life, "converted_sentence"] = self.NATURAL_LIFE_YEARS

        n_undefined = int(out["converted_sentence"].isna().sum())
        logger.info(
            "Converted %d sentences to years (%d without a time conversion)",
            len(out) - n_undefined,
            n_undefined,
        )
        return out

    # ==================== Dates ====================

    def parse_dates(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Parse ``sentence_date`` and add ``sentence_year``.

        The raw value may carry a trailing time component
        (``12/21/2011 12:00:00 AM``); only the date token is used.
        Unparseable dates become NaT and their year <NA>.
        """
        out = df.copy()
        date_token = out["sentence_date"].astype("string").str.strip().str.split(" ").str[0]
        out["sentence_date"] = pd.to_datetime(
            date_token, format=self.DATE_FORMAT, errors="coerce"
        )
        out["sentence_year"] = out["sentence_date"].dt.year.astype("Int64")

        n_bad = int(out["sentence_date"].isna().sum())
        if n_bad:
            logger.warning("%d rows have an unparseable sentence date", n_bad)
        return out

    # ==================== Labels ====================

    @staticmethod
    def clean_labels(df: pd.DataFrame) -> pd.DataFrame:
        """Strip whitespace around categorical labels (not judge names)."""
        out = df.copy()
        for col in ["felony_class", "sentence_type", "commitment_unit"]:
            if col in out.columns:
                out[col] = out[col].astype("string").str.strip()
        return out

    def select_primary_charges(self, df: pd.DataFrame) -> pd.DataFrame:
        """Keep only primary-charge rows when the flag column is present."""
        if "primary_charge_flag" not in df.columns:
            return df.copy()

        flag = (
            df["primary_charge_flag"]
            .astype("string")
            .str.strip()
            .str.lower()
            .isin(self.TRUE_FLAGS)
        )
        out = df[flag.fillna(False)].reset_index(drop=True)
        logger.info("Kept %d of %d rows as primary charges", len(out), len(df))
        return out

    # ==================== Full Pipeline ====================

    def preprocess(self, raw_df: pd.DataFrame) -> pd.DataFrame:
        """
        Run the full normalization pipeline.

        Args:
            raw_df: Frame from ``SentencingDataLoader.load``.

        Returns:
            New DataFrame with ``converted_sentence``, parsed
            ``sentence_date`` and ``sentence_year``.
        """
        df = raw_df
        if self.primary_charges_only:
            df = self.select_primary_charges(df)
        df = self.clean_labels(df)
        df = self.convert_sentences(df)
        df = self.parse_dates(df)
        logger.info("Preprocessed %d sentencing records", len(df))
        return df

    # ==================== Persistence ====================

    @staticmethod
    def save_processed_data(
        df: pd.DataFrame, output_dir: str = "data/processed"
    ) -> Path:
        """
        Save the processed frame to parquet.

        Args:
            df: Processed sentencing frame.
            output_dir: Directory to write the file.

        Returns:
            Path of the written file.
        """
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        filepath = output_path / "sentencing.parquet"
        df.to_parquet(filepath, index=False)
        logger.info("Saved sentencing data to %s", filepath)
        return filepath

    @staticmethod
    def load_processed_data(
        processed_dir: str = "data/processed",
    ) -> Optional[pd.DataFrame]:
        """Load a previously processed frame, or None if absent."""
        filepath = Path(processed_dir) / "sentencing.parquet"
        if not filepath.exists():
            return None
        df = pd.read_parquet(filepath)
        logger.info("Loaded %d records from %s", len(df), filepath)
        return df

"""
Data Acquisition Module for Sentencing Severity Analysis.

Downloads and loads the Cook County State's Attorney sentencing extract,
published as a CSV export on the Cook County open data portal.
"""

import logging
from pathlib import Path
from typing import Optional

import pandas as pd
import requests
from tqdm import tqdm

logger = logging.getLogger(__name__)


class SentencingDataLoader:
    """
    Handles downloading and loading of the sentencing dataset.

    The extract holds one row per charge. Each row carries the charge's
    disposition class, the sentence type and length, the sentencing judge
    and the sentence date.
    """

    DATASET_URL = (
        "https://datacatalog.cookcountyil.gov/api/views/tg8v-tm6u/rows.csv"
        "?accessType=DOWNLOAD"
    )
    DEFAULT_FILENAME = "sentencing.csv"

    # Raw column name -> canonical column name
    REQUIRED_COLUMNS = {
        "DISPOSITION_CHARGED_CLASS": "felony_class",
        "SENTENCE_TYPE": "sentence_type",
        "COMMITMENT_TERM": "commitment_term",
        "COMMITMENT_UNIT": "commitment_unit",
        "SENTENCE_JUDGE": "sentence_judge",
        "SENTENCE_DATE": "sentence_date",
    }

    OPTIONAL_COLUMNS = {
        "CASE_ID": "case_id",
        "CASE_PARTICIPANT_ID": "case_participant_id",
        "PRIMARY_CHARGE_FLAG": "primary_charge_flag",
    }

    def __init__(self, data_dir: str = "data/raw", timeout: int = 120):
        """
        Initialize the data loader.

        Args:
            data_dir: Directory to store the downloaded CSV.
            timeout: HTTP timeout in seconds.
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers["User-Agent"] = (
            "SentencingSeverityResearch/0.1 (Academic Research)"
        )

    @property
    def default_path(self) -> Path:
        return self.data_dir / self.DEFAULT_FILENAME

    def download(
        self,
        dest_path: Optional[Path] = None,
        force: bool = False,
        chunk_size: int = 1 << 16,
    ) -> Path:
        """
        Download the dataset CSV to the raw data directory.

        The body is streamed to a ``.part`` file that replaces
        ``dest_path`` only once complete, so an interrupted download never
        leaves a truncated file at ``dest_path``.

        Args:
            dest_path: Local path to save the file. Defaults to
                ``<data_dir>/sentencing.csv``.
            force: If True, re-download even if the file exists.
            chunk_size: Download chunk size in bytes.

        Returns:
            Path to the downloaded file.

        Raises:
            requests.RequestException: On network or HTTP errors.
        """
        dest_path = Path(dest_path) if dest_path else self.default_path

        if dest_path.exists() and not force:
            logger.info("File already exists: %s", dest_path)
            return dest_path

        logger.info("Downloading: %s", self.DATASET_URL)
        part_path = dest_path.with_name(dest_path.name + ".part")

        try:
            response = self._session.get(
                self.DATASET_URL, stream=True, timeout=self.timeout
            )
            response.raise_for_status()

            total_size = int(response.headers.get("content-length", 0))

            with open(part_path, "wb") as f:
                with tqdm(total=total_size, unit="B", unit_scale=True,
                          desc=dest_path.name) as pbar:
                    for chunk in response.iter_content(chunk_size=chunk_size):
                        if chunk:
                            f.write(chunk)
                            pbar.update(len(chunk))

            part_path.replace(dest_path)

        except requests.RequestException as e:
            logger.error("Failed to download %s: %s", self.DATASET_URL, e)
            raise

        finally:
            # Left behind only when the download did not complete
            if part_path.exists():
                part_path.unlink()

        logger.info("Downloaded successfully: %s", dest_path)
        return dest_path

    def load(self, path: Optional[Path] = None) -> pd.DataFrame:
        """
        Load the raw CSV into a DataFrame with canonical column names.

        All values are read as strings; numeric and date parsing happens
        during preprocessing.

        Args:
            path: CSV path. Defaults to the download location.

        Returns:
            DataFrame with the recognized columns renamed.

        Raises:
            ValueError: If a required column is missing.
        """
        path = Path(path) if path else self.default_path
        df = pd.read_csv(path, dtype=str, keep_default_na=True)
        df.columns = [c.strip().upper() for c in df.columns]
        logger.info("Loaded %d raw rows from %s", len(df), path)
        return self.select_columns(df)

    @classmethod
    def select_columns(cls, df: pd.DataFrame) -> pd.DataFrame:
        """Keep the recognized columns and rename them to canonical names."""
        missing = [c for c in cls.REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Sentencing data is missing columns: {missing}")

        mapping = dict(cls.REQUIRED_COLUMNS)
        mapping.update(
            {k: v for k, v in cls.OPTIONAL_COLUMNS.items() if k in df.columns}
        )
        return df[list(mapping)].rename(columns=mapping)

    def fetch(self, force: bool = False) -> pd.DataFrame:
        """Download (if needed) and load the dataset."""
        return self.load(self.download(force=force))

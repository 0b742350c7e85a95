"""
Significance Testing Module for Sentencing Severity Analysis.

Fits linear and logistic models of the severity indicators against a
judge indicator, controlling for sentence date (continuous) and sentence
year (fixed effect). Linear models use heteroskedasticity-robust (HC1)
standard errors; one linear model can be cross-checked with a
nonparametric bootstrap of the judge coefficient.
"""

import hashlib
import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import PerfectSeparationError
from tqdm import tqdm

from .analysis import exact_judge_key, judge_names_match

logger = logging.getLogger(__name__)

INDICATOR_COLUMN = "judge_indicator"
DATE_COLUMN = "sentence_date_numeric"


@dataclass(frozen=True)
class ModelSpec:
    """A regression of one severity indicator on one judge's indicator."""

    response: str
    judge: str
    subset: Optional[str] = None  # boolean column restricting the cohort
    continuous_controls: Tuple[str, ...] = (DATE_COLUMN,)
    categorical_controls: Tuple[str, ...] = ("sentence_year",)
    label: str = ""


@dataclass
class ModelResult:
    """Judge coefficient from one fitted model."""

    judge: str
    response: str
    family: str  # "ols" or "logit"
    label: str = ""
    n_obs: int = 0
    coefficient: float = np.nan
    std_error: float = np.nan
    p_value: float = np.nan
    ci_lower: float = np.nan
    ci_upper: float = np.nan
    significant: bool = False
    degenerate: bool = False
    message: str = ""
    summary_text: str = field(default="", repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without the full summary text)."""
        d = asdict(self)
        d.pop("summary_text")
        return d


@dataclass
class BootstrapResult:
    """Bootstrap distribution of a judge coefficient and its intervals."""

    judge: str
    response: str
    n_resamples: int
    seed: int
    coefficient: float
    ci_lower: float
    ci_upper: float
    robust_ci_lower: float
    robust_ci_upper: float
    coefficients: np.ndarray = field(repr=False, default_factory=lambda: np.empty(0))

    @property
    def bound_gap(self) -> float:
        """Largest distance between matching bounds of the two intervals."""
        return max(
            abs(self.ci_lower - self.robust_ci_lower),
            abs(self.ci_upper - self.robust_ci_upper),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.pop("coefficients")
        d["bound_gap"] = self.bound_gap
        return d


# ==================== Design Matrix ====================

def decimal_year(dates: pd.Series) -> pd.Series:
    """Express dates as a continuous year value (e.g. 2015.5)."""
    dates = pd.to_datetime(dates)
    return dates.dt.year + (dates.dt.dayofyear - 1) / 365.25


def build_design_matrix(
    df: pd.DataFrame,
    spec: ModelSpec,
    name_key: Callable[[Any], Any] = exact_judge_key,
) -> Tuple[pd.Series, pd.DataFrame]:
    """
    Build the response vector and design matrix for a model.

    Columns: const, judge_indicator, continuous controls, and drop-first
    dummies for each categorical control. Rows missing the response or a
    control are dropped.

    Returns:
        Tuple of (y, X).
    """
    data = df
    if spec.subset is not None:
        data = data[data[spec.subset].astype(bool)]
    data = data.assign(**{DATE_COLUMN: decimal_year(data["sentence_date"])})
    data = data.dropna(
        subset=[spec.response, *spec.continuous_controls, *spec.categorical_controls]
    )

    X = pd.DataFrame(index=data.index)
    X[INDICATOR_COLUMN] = (
        data["sentence_judge"]
        .map(lambda name: judge_names_match(name, spec.judge, name_key))
        .astype(float)
    )
    for col in spec.continuous_controls:
        X[col] = data[col].astype(float)
    for col in spec.categorical_controls:
        dummies = pd.get_dummies(
            data[col].astype(int), prefix=col, drop_first=True, dtype=float
        )
        X = X.join(dummies)
    X = sm.add_constant(X, has_constant="add")

    y = data[spec.response].astype(float)
    return y, X


def degeneracy_reason(y: pd.Series, X: pd.DataFrame) -> Optional[str]:
    """Explain why the judge coefficient is not identifiable, or None."""
    if len(y) == 0:
        return "empty cohort"
    if y.nunique() < 2:
        return f"response '{y.name}' has no variance in the cohort"
    if X[INDICATOR_COLUMN].nunique() < 2:
        return "judge indicator has no variance in the cohort"
    if np.linalg.matrix_rank(X.to_numpy(dtype=float)) < X.shape[1]:
        return "design matrix is rank deficient"
    return None


def separation_reason(y: pd.Series, X: pd.DataFrame) -> Optional[str]:
    """
    Detect perfect separation on the judge indicator.

    When the response is constant among the judge's records (or among
    everyone else's), the logistic coefficient diverges.
    """
    indicator = X[INDICATOR_COLUMN] == 1
    for mask, who in ((indicator, "the judge's"), (~indicator, "other judges'")):
        if y[mask].nunique() < 2:
            return f"response '{y.name}' is constant within {who} records (perfect separation)"
    return None


def _mark_degenerate(result: ModelResult, reason: str) -> ModelResult:
    logger.warning(
        "Degenerate %s model for %s on %s: %s",
        result.family,
        result.judge,
        result.response,
        reason,
    )
    result.degenerate = True
    result.message = reason
    return result


def _fill_result(result: ModelResult, fitted, alpha: float) -> ModelResult:
    coefficient = float(fitted.params[INDICATOR_COLUMN])
    std_error = float(fitted.bse[INDICATOR_COLUMN])
    if not (np.isfinite(coefficient) and np.isfinite(std_error)):
        return _mark_degenerate(result, "non-finite coefficient or standard error")

    ci = fitted.conf_int(alpha=alpha).loc[INDICATOR_COLUMN]
    result.coefficient = coefficient
    result.std_error = std_error
    result.p_value = float(fitted.pvalues[INDICATOR_COLUMN])
    result.ci_lower = float(ci.iloc[0])
    result.ci_upper = float(ci.iloc[1])
    result.significant = bool(result.p_value < alpha)
    result.summary_text = fitted.summary().as_text()
    return result


# ==================== Model Fitting ====================

def fit_linear(
    df: pd.DataFrame,
    spec: ModelSpec,
    cov_type: str = "HC1",
    alpha: float = 0.05,
    name_key: Callable[[Any], Any] = exact_judge_key,
):
    """
    Fit a linear probability model with robust standard errors.

    Returns:
        Tuple of (ModelResult, fitted statsmodels results or None when the
        model is degenerate).
    """
    y, X = build_design_matrix(df, spec, name_key)
    result = ModelResult(
        judge=spec.judge, response=spec.response, family="ols",
        label=spec.label, n_obs=len(y),
    )
    reason = degeneracy_reason(y, X)
    if reason:
        return _mark_degenerate(result, reason), None

    fitted = sm.OLS(y, X).fit(cov_type=cov_type)
    return _fill_result(result, fitted, alpha), fitted


def fit_logistic(
    df: pd.DataFrame,
    spec: ModelSpec,
    alpha: float = 0.05,
    name_key: Callable[[Any], Any] = exact_judge_key,
    maxiter: int = 100,
):
    """
    Fit a logistic model of the same specification.

    Returns:
        Tuple of (ModelResult, fitted statsmodels results or None).
    """
    y, X = build_design_matrix(df, spec, name_key)
    result = ModelResult(
        judge=spec.judge, response=spec.response, family="logit",
        label=spec.label, n_obs=len(y),
    )
    reason = degeneracy_reason(y, X) or separation_reason(y, X)
    if reason:
        return _mark_degenerate(result, reason), None

    try:
        fitted = sm.Logit(y, X).fit(disp=0, maxiter=maxiter)
    except (PerfectSeparationError, np.linalg.LinAlgError) as e:
        return _mark_degenerate(result, str(e)), None

    if not fitted.mle_retvals.get("converged", True):
        return _mark_degenerate(result, "maximum likelihood did not converge"), None
    return _fill_result(result, fitted, alpha), fitted


# ==================== Bootstrap ====================

def bootstrap_coefficients(
    y: pd.Series,
    X: pd.DataFrame,
    column: str = INDICATOR_COLUMN,
    n_resamples: int = 5000,
    seed: int = 42,
    show_progress: bool = True,
) -> np.ndarray:
    """
    Resample design-matrix rows with replacement and refit OLS.

    Trials are independent; the sequence of resamples is fully determined
    by ``seed``.

    Returns:
        Array of ``n_resamples`` coefficients for ``column``.
    """
    rng = np.random.default_rng(seed)
    y_arr = y.to_numpy(dtype=float)
    X_arr = X.to_numpy(dtype=float)
    j = X.columns.get_loc(column)
    n = len(y_arr)

    coefficients = np.empty(n_resamples)
    for i in tqdm(range(n_resamples), desc="Bootstrap resamples", disable=not show_progress):
        idx = rng.integers(0, n, size=n)
        beta, *_ = np.linalg.lstsq(X_arr[idx], y_arr[idx], rcond=None)
        coefficients[i] = beta[j]
    return coefficients


def design_fingerprint(y: pd.Series, X: pd.DataFrame) -> str:
    """Short digest of the response, design matrix and column names."""
    frame = pd.concat([y.rename("response"), X], axis=1)
    row_hashes = pd.util.hash_pandas_object(frame, index=False).to_numpy()
    name_hashes = pd.util.hash_pandas_object(
        pd.Series(list(frame.columns)), index=False
    ).to_numpy()
    digest = hashlib.sha1(row_hashes.tobytes() + name_hashes.tobytes())
    return digest.hexdigest()[:12]


def _slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", text).strip("_").lower() or "unknown"


class JudgeSignificanceTester:
    """
    Tests whether named judges sentence more severely than their peers.

    For each judge, three severity indicators are modeled twice (OLS with
    robust errors and Logit):

    - above_median, over custody sentences
    - is_class4_to_custody, over class 4 felonies
    - severe, over all qualifying records
    """

    MODEL_TARGETS = (
        ("above_median", "is_custody", "Above-median custody sentence"),
        ("is_class4_to_custody", "is_class4", "Class 4 felony to custody"),
        ("severe", None, "Severe sentence"),
    )

    def __init__(
        self,
        flagged_df: pd.DataFrame,
        alpha: float = 0.05,
        cov_type: str = "HC1",
        name_key: Callable[[Any], Any] = exact_judge_key,
    ):
        """
        Initialize the tester.

        Args:
            flagged_df: Output of ``SentencingSeverityAnalyzer.flagged_records``.
            alpha: Significance level.
            cov_type: statsmodels robust covariance type for OLS.
            name_key: Judge identity function.
        """
        self.data = flagged_df
        self.alpha = alpha
        self.cov_type = cov_type
        self.name_key = name_key
        self.results: List[ModelResult] = []
        self.fitted_models: Dict[Tuple[str, str], Any] = {}

    def model_specs(self, judge: str) -> List[ModelSpec]:
        return [
            ModelSpec(response=response, judge=judge, subset=subset, label=label)
            for response, subset, label in self.MODEL_TARGETS
        ]

    def test_judge(self, judge: str) -> List[ModelResult]:
        """Fit all six models for one judge."""
        judge_results = []
        for spec in self.model_specs(judge):
            linear, fitted = fit_linear(
                self.data, spec, self.cov_type, self.alpha, self.name_key
            )
            if fitted is not None:
                self.fitted_models[(judge, spec.response)] = fitted
            logistic, _ = fit_logistic(self.data, spec, self.alpha, self.name_key)
            judge_results.extend([linear, logistic])

        self.results.extend(judge_results)
        logger.info(
            "Tested %s: %d of %d models significant",
            judge,
            sum(r.significant for r in judge_results),
            len(judge_results),
        )
        return judge_results

    def test_judges(self, judges: Iterable[str]) -> pd.DataFrame:
        """Fit all models for each judge and tabulate the results."""
        rows = []
        for judge in judges:
            rows.extend(r.to_dict() for r in self.test_judge(judge))
        return pd.DataFrame(rows)

    def results_for(self, judge: str) -> List[ModelResult]:
        return [r for r in self.results if r.judge == judge]

    def bootstrap(
        self,
        judge: str,
        response: str = "severe",
        n_resamples: int = 5000,
        seed: int = 42,
        cache_dir: Optional[str] = None,
        show_progress: bool = True,
    ) -> BootstrapResult:
        """
        Bootstrap the judge coefficient of one linear model.

        The percentile interval of the resampled coefficients is reported
        next to the robust interval of the original fit. Coefficients are
        cached as parquet under ``cache_dir`` keyed by judge, response,
        resample count, seed and a fingerprint of the design matrix, so a
        changed dataset never reuses another dataset's resamples.

        Raises:
            ValueError: If the response is unknown or the model is
                degenerate.
        """
        specs = {s.response: s for s in self.model_specs(judge)}
        if response not in specs:
            raise ValueError(f"Unknown response variable: {response}")
        spec = specs[response]

        linear, fitted = fit_linear(self.data, spec, self.cov_type, self.alpha, self.name_key)
        if linear.degenerate:
            raise ValueError(
                f"Cannot bootstrap degenerate model for {judge}: {linear.message}"
            )
        self.fitted_models[(judge, response)] = fitted

        y, X = build_design_matrix(self.data, spec, self.name_key)
        fingerprint = design_fingerprint(y, X)

        cache_path = None
        if cache_dir is not None:
            cache_path = Path(cache_dir) / (
                f"bootstrap_{_slug(judge)}_{response}_{n_resamples}_{seed}"
                f"_{fingerprint}.parquet"
            )

        coefficients = None
        if cache_path is not None and cache_path.exists():
            cached = pd.read_parquet(cache_path)
            if (
                len(cached) == n_resamples
                and "fingerprint" in cached.columns
                and (cached["fingerprint"] == fingerprint).all()
            ):
                coefficients = cached["coefficient"].to_numpy()
                logger.info("Loaded cached bootstrap from %s", cache_path)

        if coefficients is None:
            coefficients = bootstrap_coefficients(
                y, X, n_resamples=n_resamples, seed=seed, show_progress=show_progress
            )
            if cache_path is not None:
                cache_path.parent.mkdir(parents=True, exist_ok=True)
                pd.DataFrame(
                    {"coefficient": coefficients, "fingerprint": fingerprint}
                ).to_parquet(cache_path, index=False)
                logger.info("Saved bootstrap coefficients to %s", cache_path)

        lower, upper = np.percentile(
            coefficients, [100 * self.alpha / 2, 100 * (1 - self.alpha / 2)]
        )
        result = BootstrapResult(
            judge=judge,
            response=response,
            n_resamples=n_resamples,
            seed=seed,
            coefficient=linear.coefficient,
            ci_lower=float(lower),
            ci_upper=float(upper),
            robust_ci_lower=linear.ci_lower,
            robust_ci_upper=linear.ci_upper,
            coefficients=coefficients,
        )
        logger.info(
            "Bootstrap CI [%.4f, %.4f] vs robust CI [%.4f, %.4f]",
            result.ci_lower,
            result.ci_upper,
            result.robust_ci_lower,
            result.robust_ci_upper,
        )
        return result

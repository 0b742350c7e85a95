"""
Visualization Module for Sentencing Severity Analysis.

Static figures for the severity ranking and the significance tests: a
ranking bar chart, a residual Q-Q plot and the bootstrap distribution of
a judge coefficient.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats as scipy_stats

logger = logging.getLogger(__name__)


class SeverityVisualizer:
    """
    Creates visualizations for the sentencing severity analysis.

    Supports:
    - Judge severity ranking chart
    - Residual normal Q-Q plot for a fitted linear model
    - Bootstrap coefficient distribution with percentile and robust CIs
    """

    SEVERITY_COLOR = "#D32F2F"
    BOOTSTRAP_COLOR = "steelblue"
    ROBUST_COLOR = "#FF9800"

    def __init__(self, figsize: Tuple[int, int] = (12, 8)):
        """
        Initialize the visualizer.

        Args:
            figsize: Default figure size for matplotlib plots.
        """
        self.figsize = figsize

    @staticmethod
    def _save(fig: plt.Figure, save_path: Optional[str]) -> None:
        if save_path:
            fig.savefig(save_path, dpi=150, bbox_inches="tight")
            logger.info("Saved figure to %s", save_path)

    # ==================== Ranking ====================

    def plot_severity_ranking(
        self,
        ranking: pd.DataFrame,
        top_n: int = 20,
        title: str = "Most Severe Sentencing Judges",
        save_path: Optional[str] = None,
    ) -> plt.Figure:
        """
        Plot severity scores for the top of the ranking.

        Args:
            ranking: DataFrame from SentencingSeverityAnalyzer.severity_ranking().
            top_n: Number of judges to show.
            title: Plot title.
            save_path: Optional path to save figure.

        Returns:
            Matplotlib figure.
        """
        fig, ax = plt.subplots(figsize=self.figsize)

        df = ranking.dropna(subset=["severity_score"]).head(top_n)
        df = df.iloc[::-1]

        ax.barh(range(len(df)), df["severity_score"], color=self.SEVERITY_COLOR)
        ax.set_yticks(range(len(df)))
        ax.set_yticklabels(df["judge"], fontsize=8)
        ax.set_xlabel("Severity Score (0-1)")
        ax.set_title(title, fontsize=14)
        ax.set_xlim(0, 1)
        if not ranking["severity_score"].dropna().empty:
            median = ranking["severity_score"].median()
            ax.axvline(x=median, color="gray", linestyle="--", alpha=0.5,
                       label=f"Median of ranked judges: {median:.2f}")
            ax.legend(loc="lower right")

        plt.tight_layout()
        self._save(fig, save_path)
        return fig

    # ==================== Model Diagnostics ====================

    def plot_residual_qq(
        self,
        residuals,
        title: str = "Residual Q-Q Plot",
        save_path: Optional[str] = None,
    ) -> plt.Figure:
        """
        Plot residual quantiles against a normal distribution.

        Args:
            residuals: Residuals of a fitted linear model.
            title: Plot title.
            save_path: Optional path to save figure.

        Returns:
            Matplotlib figure.
        """
        fig, ax = plt.subplots(figsize=(8, 8))

        scipy_stats.probplot(np.asarray(residuals, dtype=float), dist="norm", plot=ax)
        ax.get_lines()[0].set_markerfacecolor(self.BOOTSTRAP_COLOR)
        ax.get_lines()[0].set_markeredgecolor(self.BOOTSTRAP_COLOR)
        ax.get_lines()[0].set_markersize(2)
        ax.set_title(title, fontsize=14)

        plt.tight_layout()
        self._save(fig, save_path)
        return fig

    def plot_bootstrap_distribution(
        self,
        bootstrap_result,
        title: Optional[str] = None,
        save_path: Optional[str] = None,
    ) -> plt.Figure:
        """
        Plot the bootstrap distribution of the judge coefficient.

        Args:
            bootstrap_result: BootstrapResult from JudgeSignificanceTester.bootstrap().
            title: Plot title. Defaults to one naming the judge.
            save_path: Optional path to save figure.

        Returns:
            Matplotlib figure.
        """
        fig, ax = plt.subplots(figsize=self.figsize)
        r = bootstrap_result

        sns.histplot(r.coefficients, bins=50, color=self.BOOTSTRAP_COLOR, ax=ax)
        ax.axvline(r.coefficient, color="black", linewidth=1.2,
                   label=f"Estimate: {r.coefficient:.4f}")
        for bound in (r.ci_lower, r.ci_upper):
            ax.axvline(bound, color=self.BOOTSTRAP_COLOR, linestyle="--")
        for bound in (r.robust_ci_lower, r.robust_ci_upper):
            ax.axvline(bound, color=self.ROBUST_COLOR, linestyle=":")
        ax.plot([], [], color=self.BOOTSTRAP_COLOR, linestyle="--",
                label=f"Bootstrap CI [{r.ci_lower:.4f}, {r.ci_upper:.4f}]")
        ax.plot([], [], color=self.ROBUST_COLOR, linestyle=":",
                label=f"Robust CI [{r.robust_ci_lower:.4f}, {r.robust_ci_upper:.4f}]")

        ax.set_xlabel(f"Judge coefficient ({r.response})")
        ax.set_ylabel("Resamples")
        ax.set_title(title or f"Bootstrap Distribution: {r.judge} (n={r.n_resamples})",
                     fontsize=14)
        ax.legend()

        plt.tight_layout()
        self._save(fig, save_path)
        return fig

    # ==================== Dashboard ====================

    def create_analysis_dashboard(
        self,
        ranking: Optional[pd.DataFrame] = None,
        residuals=None,
        bootstrap_result=None,
        output_dir: str = "output/figures",
        prefix: str = "",
    ) -> List[str]:
        """
        Create and save every available figure.

        Args:
            ranking: Severity ranking frame.
            residuals: Residuals of the bootstrapped linear model.
            bootstrap_result: BootstrapResult to plot.
            output_dir: Directory to save figures.
            prefix: Filename prefix.

        Returns:
            List of saved file paths.
        """
        Path(output_dir).mkdir(parents=True, exist_ok=True)
        saved_files = []

        if ranking is not None and not ranking.empty:
            path = f"{output_dir}/{prefix}severity_ranking.png"
            plt.close(self.plot_severity_ranking(ranking, save_path=path))
            saved_files.append(path)

        if residuals is not None and len(residuals) > 0:
            path = f"{output_dir}/{prefix}residual_qq.png"
            plt.close(self.plot_residual_qq(residuals, save_path=path))
            saved_files.append(path)

        if bootstrap_result is not None:
            path = f"{output_dir}/{prefix}bootstrap_distribution.png"
            plt.close(self.plot_bootstrap_distribution(bootstrap_result, save_path=path))
            saved_files.append(path)

        logger.info("Created %d visualizations in %s", len(saved_files), output_dir)
        return saved_files

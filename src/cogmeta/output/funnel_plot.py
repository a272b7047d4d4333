"""Funnel plot visualization for publication bias assessment."""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure
from scipy import stats

from cogmeta.analysis.effect_sizes import EffectSize
from cogmeta.analysis.statistics import ModelResult

logger = logging.getLogger(__name__)


class FunnelPlot:
    """Generates funnel plots for a domain's main-effect model.

    Studies are drawn as effect size against standard error, with the y-axis
    inverted so the most precise studies sit at the top. Pseudo-confidence
    contours open out from the pooled estimate.
    """

    def __init__(
        self,
        contour_levels: list[float] | None = None,
        show_filled: bool = True,
        figsize: tuple[float, float] = (8, 6),
    ) -> None:
        """
        Initialize the funnel plot generator.

        Args:
            contour_levels: Confidence levels for the pseudo-CI contours (default 95% only)
            show_filled: Whether to draw trim-and-fill imputed studies
            figsize: Figure size (width, height) in inches
        """
        self.contour_levels = contour_levels or [0.95]
        self.show_filled = show_filled
        self.figsize = figsize

    def create(
        self,
        model: ModelResult,
        filled: list[EffectSize] | None = None,
        title: str = "Funnel Plot",
    ) -> Figure:
        """
        Create a funnel plot figure.

        Args:
            model: Main-effect model; its effects are the observed studies
            filled: Studies imputed by trim-and-fill, drawn as open circles
            title: Plot title

        Returns:
            Matplotlib Figure object
        """
        observed = [e for e in model.effects if not e.filled]
        imputed = [e for e in (filled or []) if e.filled] if self.show_filled else []
        pooled = model.pooled.estimate

        fig, ax = plt.subplots(figsize=self.figsize)

        all_se = [e.se for e in observed + imputed]
        se_max = max(all_se) * 1.1 if all_se else 1.0
        se_range = np.linspace(0, se_max, 100)

        # Pseudo-confidence contours, widest drawn lightest
        for i, level in enumerate(sorted(self.contour_levels, reverse=True)):
            z = stats.norm.ppf(1 - (1 - level) / 2)
            alpha = 0.3 + 0.2 * i
            ax.plot(pooled - z * se_range, se_range, "k--", linewidth=1, alpha=alpha)
            ax.plot(pooled + z * se_range, se_range, "k--", linewidth=1, alpha=alpha, label=f"{level:.0%} pseudo-CI")

        # Shade the 95% region
        z_95 = stats.norm.ppf(0.975)
        ax.fill_betweenx(se_range, pooled - z_95 * se_range, pooled + z_95 * se_range, color="lightgray", alpha=0.3)

        ax.axvline(x=pooled, color="steelblue", linestyle="-", linewidth=1.5, label="Pooled estimate")
        ax.axvline(x=0.0, color="gray", linestyle=":", linewidth=1, alpha=0.7)

        ax.scatter(
            [e.effect for e in observed],
            [e.se for e in observed],
            s=40,
            color="black",
            edgecolors="black",
            zorder=3,
            label="Observed",
        )
        if imputed:
            ax.scatter(
                [e.effect for e in imputed],
                [e.se for e in imputed],
                s=40,
                facecolors="white",
                edgecolors="black",
                zorder=3,
                label="Imputed (trim-and-fill)",
            )

        ax.set_ylim(se_max, 0)
        ax.set_xlabel("Standardized mean difference")
        ax.set_ylabel("Standard error")
        ax.set_title(title, fontsize=12, fontweight="bold")
        ax.legend(loc="lower right", fontsize=8, frameon=False)

        plt.tight_layout()
        return fig

    def save(self, fig: Figure, path: Path, dpi: int = 300) -> None:
        """
        Save the funnel plot to a file.

        Args:
            fig: Matplotlib Figure to save
            path: Output file path (supports .png, .pdf, .svg)
            dpi: Resolution for raster formats
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=dpi, bbox_inches="tight")
        logger.info("Saved funnel plot to %s", path)
        plt.close(fig)

    def create_and_save(
        self,
        model: ModelResult,
        output_path: Path,
        filled: list[EffectSize] | None = None,
        title: str = "Funnel Plot",
        dpi: int = 300,
    ) -> None:
        """Create and save a funnel plot in one step."""
        fig = self.create(model, filled=filled, title=title)
        self.save(fig, output_path, dpi)

"""Forest plot visualization for a domain's main-effect model."""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from cogmeta.analysis.statistics import ModelResult

logger = logging.getLogger(__name__)


class ForestPlot:
    """Generates forest plots for meta-analysis visualization.

    Forest plots display individual study effect sizes as points with confidence
    interval lines, and the pooled effect as a diamond at the bottom.
    """

    def __init__(self, show_weights: bool = True, show_heterogeneity: bool = True) -> None:
        """
        Initialize the forest plot generator.

        Args:
            show_weights: Whether to show study weights
            show_heterogeneity: Whether to show heterogeneity statistics
        """
        self.show_weights = show_weights
        self.show_heterogeneity = show_heterogeneity

    def create(self, model: ModelResult, title: str = "Forest Plot") -> Figure:
        """
        Create a forest plot figure.

        Args:
            model: Main-effect model carrying the weighted study effects
            title: Plot title

        Returns:
            Matplotlib Figure object
        """
        effects = list(model.effects)
        pooled = model.pooled
        n_studies = len(effects)

        fig, ax = plt.subplots(figsize=(12, max(6, n_studies * 0.4 + 3)))

        # Y positions for studies (top to bottom)
        y_positions = list(range(n_studies, 0, -1))

        lowest = min([e.ci_lower for e in effects] + [pooled.ci_lower])
        highest = max([e.ci_upper for e in effects] + [pooled.ci_upper])
        padding = 0.1 * (highest - lowest) or 0.5
        x_min, x_max = lowest - padding, highest + padding

        for effect, y in zip(effects, y_positions, strict=True):
            # Marker size proportional to weight
            marker_size = 6
            if effect.weight is not None:
                marker_size = max(4, min(12, effect.weight / 5))
            ax.plot(effect.effect, y, "ks", markersize=marker_size)
            ax.hlines(y, effect.ci_lower, effect.ci_upper, colors="black", linewidth=1.5)

        # Pooled effect as diamond
        y_pooled = 0
        half = 0.2
        ax.fill(
            [pooled.ci_lower, pooled.estimate, pooled.ci_upper, pooled.estimate, pooled.ci_lower],
            [y_pooled, y_pooled + half, y_pooled, y_pooled - half, y_pooled],
            color="steelblue",
            edgecolor="black",
            linewidth=1,
        )

        # Line of no effect
        ax.axvline(x=0.0, color="gray", linestyle="--", linewidth=1, alpha=0.7)

        ax.set_xlim(x_min, x_max)
        ax.set_ylim(-1, n_studies + 1)
        ax.set_xlabel("Standardized mean difference")
        ax.set_yticks([])
        ax.spines["left"].set_visible(False)

        transform = ax.get_yaxis_transform()
        for effect, y in zip(effects, y_positions, strict=True):
            name = effect.label[:30] + "..." if len(effect.label) > 30 else effect.label
            ax.text(-0.02, y, name, ha="right", va="center", transform=transform, fontsize=9)

            text = f"{effect.effect:.2f} [{effect.ci_lower:.2f}, {effect.ci_upper:.2f}]"
            if self.show_weights and effect.weight is not None:
                text += f" ({effect.weight:.1f}%)"
            ax.text(1.02, y, text, ha="left", va="center", transform=transform, fontsize=8)

        label = "RE Model" if model.tau_squared is not None else "FE Model"
        ax.text(-0.02, y_pooled, label, ha="right", va="center", transform=transform, fontsize=9, fontweight="bold")
        ax.text(
            1.02,
            y_pooled,
            f"{pooled.estimate:.2f} [{pooled.ci_lower:.2f}, {pooled.ci_upper:.2f}]",
            ha="left",
            va="center",
            transform=transform,
            fontsize=8,
            fontweight="bold",
        )

        ax.set_title(title, fontsize=12, fontweight="bold", pad=20)

        if self.show_heterogeneity and model.q_statistic is not None:
            het_text = f"Heterogeneity: I² = {model.i_squared:.1f}%, Q = {model.q_statistic:.2f} (df = {model.df})"
            if model.tau_squared is not None:
                het_text += f", τ² = {model.tau_squared:.3f}"
            sig = "p < 0.001" if pooled.p_value < 0.001 else f"p = {pooled.p_value:.3f}"
            het_text += f"\nTest for overall effect: Z = {pooled.z:.2f}, {sig}"
            ax.text(0.5, -0.08, het_text, ha="center", va="top", transform=ax.transAxes, fontsize=8, style="italic")

        plt.tight_layout()
        return fig

    def save(self, fig: Figure, path: Path, dpi: int = 300) -> None:
        """
        Save the forest plot to a file.

        Args:
            fig: Matplotlib Figure to save
            path: Output file path (supports .png, .pdf, .svg)
            dpi: Resolution for raster formats
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=dpi, bbox_inches="tight")
        logger.info("Saved forest plot to %s", path)
        plt.close(fig)

    def create_and_save(
        self,
        model: ModelResult,
        output_path: Path,
        title: str = "Forest Plot",
        dpi: int = 300,
    ) -> None:
        """Create and save a forest plot in one step."""
        fig = self.create(model, title)
        self.save(fig, output_path, dpi)

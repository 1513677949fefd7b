# -----------------------------------------------------------------------------
# Copyright 2025 Down Syndrome Education International and contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# -----------------------------------------------------------------------------

"""
Forest plots and sampler diagnostics.

The forest plot stacks one row per group, "Average" on top:
    half-eye   posterior density (upper half violin)
    bars       80% (thick) and 95% (thin) credible intervals, dot at the median
    marker     raw observed proportion
    text       median [95% interval]
and marks the grand average with a dashed line over its shaded 95% interval.
"""

from __future__ import annotations

import logging
from os import PathLike
from pathlib import Path

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from cooffending_meta.models.hierarchical import INTERCEPT, sd_name
from cooffending_meta.posterior import AVERAGE, clean_labels, format_interval
from cooffending_meta.sampling import FitResult

logger = logging.getLogger(__name__)

DENSITY_COLOR = "#7BA7CC"
INTERVAL_COLOR = "#1F3B57"
AVERAGE_COLOR = "#C0392B"
OBSERVED_COLOR = "#E67E22"


def _row_positions(levels: list[str]) -> dict[str, float]:
    # first level plotted at the top
    n = len(levels)
    return {lv: float(n - 1 - i) for i, lv in enumerate(levels)}


def forest_plot(
    draws: pd.DataFrame,
    summary: pd.DataFrame,
    observed: pd.DataFrame | None = None,
    title: str = "",
    xlabel: str = "Proportion of co-offending",
    ax: plt.Axes | None = None,
) -> plt.Figure:
    """
    Forest plot of posterior proportions against observed proportions.

    Parameters
    ----------
    draws : pd.DataFrame
        Output of ``posterior.proportion_draws`` (``level``, ``value``).
    summary : pd.DataFrame
        Output of ``posterior.summarize_intervals`` with 80% and 95% columns.
    observed : pd.DataFrame, optional
        Raw proportions with ``level`` and ``prop`` columns; labels are
        cleaned the same way as the draws before matching.
    title, xlabel : str
        Axis labels.
    ax : plt.Axes, optional
        Axes to draw on; a new figure is created otherwise.

    Returns
    -------
    plt.Figure
    """
    level_col = draws["level"]
    if isinstance(level_col.dtype, pd.CategoricalDtype):
        levels = [str(lv) for lv in level_col.cat.categories if (level_col == lv).any()]
    else:
        levels = list(dict.fromkeys(level_col.astype(str)))
    ypos = _row_positions(levels)

    if ax is None:
        fig, ax = plt.subplots(figsize=(9, max(3.0, 0.45 * len(levels) + 1.5)))
    else:
        fig = ax.figure

    samples = [draws.loc[level_col == lv, "value"].to_numpy() for lv in levels]
    positions = [ypos[lv] for lv in levels]
    parts = ax.violinplot(
        samples,
        positions=positions,
        orientation="horizontal",
        widths=0.9,
        showextrema=False,
    )
    for body, pos, lv in zip(parts["bodies"], positions, levels):
        verts = body.get_paths()[0].vertices
        verts[:, 1] = np.clip(verts[:, 1], pos, np.inf)
        color = AVERAGE_COLOR if lv == AVERAGE else DENSITY_COLOR
        body.set_facecolor(color)
        body.set_edgecolor("none")
        body.set_alpha(0.45)

    summ = summary.assign(level=summary["level"].astype(str)).set_index("level")

    if AVERAGE in summ.index:
        avg = summ.loc[AVERAGE]
        ax.axvspan(avg["lower_95"], avg["upper_95"], color=AVERAGE_COLOR, alpha=0.08, lw=0)
        ax.axvline(avg["median"], color=AVERAGE_COLOR, linestyle="--", linewidth=1)

    for lv in levels:
        row = summ.loc[lv]
        y = ypos[lv]
        ax.hlines(y, row["lower_95"], row["upper_95"], color=INTERVAL_COLOR, linewidth=1.2)
        ax.hlines(y, row["lower_80"], row["upper_80"], color=INTERVAL_COLOR, linewidth=3.5)
        ax.scatter(row["median"], y, color="white", edgecolors=INTERVAL_COLOR, s=28, zorder=5)
        ax.text(
            1.01,
            y,
            format_interval(row["median"], row["lower_95"], row["upper_95"]),
            transform=ax.get_yaxis_transform(),
            va="center",
            ha="left",
            fontsize=8,
        )

    if observed is not None:
        obs = observed.assign(level=clean_labels(observed["level"]))
        obs = obs.loc[obs["level"].isin(ypos)]
        ax.scatter(
            obs["prop"],
            obs["level"].map(ypos),
            marker="D",
            s=22,
            color=OBSERVED_COLOR,
            zorder=6,
            label="Observed",
        )
        ax.legend(loc="lower right", frameon=False, fontsize=8)

    ax.set_yticks(positions)
    ax.set_yticklabels(levels)
    ax.set_xlim(0, 1)
    ax.set_xlabel(xlabel)
    if title:
        ax.set_title(title)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    fig.tight_layout()
    return fig


def save_figure(fig: plt.Figure, path: str | PathLike, dpi: int = 300) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    logger.info("Saved: %s", path)
    return path


def plot_trace(fit: FitResult):
    """Trace plots of the intercept and group sds, for manual inspection."""
    var_names = [INTERCEPT] + [sd_name(f) for f in fit.factors]
    return az.plot_trace(fit.idata, var_names=var_names)


def plot_ppc(fit: FitResult, num_pp_samples: int = 100):
    """
    Posterior predictive overlay of co-offense counts.

    Requires ``sampling.sample_posterior_predictive`` to have been run.
    """
    if "posterior_predictive" not in fit.idata:
        raise ValueError("No posterior_predictive group; sample it first.")
    return az.plot_ppc(fit.idata, num_pp_samples=num_pp_samples)

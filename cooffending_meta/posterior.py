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
Posterior draws
---------------
Long-format draw tables, back-transformation to proportions, label clean-up
and credible intervals.

Draw tables have one row per (chain, draw, level) and a ``value`` column.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

import arviz as az
import pandas as pd

from cooffending_meta import stats_utils
from cooffending_meta.models.hierarchical import INTERCEPT, offset_name

AVERAGE = "Average"
DRAW_KEYS = ["chain", "draw"]
DEFAULT_PROBS = (0.8, 0.95)

_DOT_DELIM = re.compile(r"\.(?=\S)")
_WS = re.compile(r"\s+")


def tidy_draws(idata: az.InferenceData, var_name: str) -> pd.DataFrame:
    """
    Long-format draws of one posterior variable.

    Parameters
    ----------
    idata : az.InferenceData
        Fit output with a ``posterior`` group.
    var_name : str
        Variable with zero or one dimension beyond (chain, draw).

    Returns
    -------
    pd.DataFrame
        Columns ``chain, draw, level, value``. Scalar variables are labelled
        with their own name.
    """
    da = idata.posterior[var_name]
    extra = [d for d in da.dims if d not in DRAW_KEYS]
    if len(extra) > 1:
        raise ValueError(f"{var_name} has more than one group dimension: {extra}")

    df = da.to_dataframe(name="value").reset_index()
    if extra:
        df = df.rename(columns={extra[0]: "level"})
        df["level"] = df["level"].astype(str)
    else:
        df["level"] = var_name
    return df.loc[:, ["chain", "draw", "level", "value"]]


def average_log_odds(idata: az.InferenceData) -> pd.DataFrame:
    """Fixed-intercept draws, labelled ``"Average"``."""
    df = tidy_draws(idata, INTERCEPT)
    df["level"] = AVERAGE
    return df


def group_log_odds(idata: az.InferenceData, factor: str) -> pd.DataFrame:
    """
    Group-specific log-odds: each level's offset plus the fixed intercept,
    matched draw by draw.
    """
    offsets = tidy_draws(idata, offset_name(factor))
    intercept = tidy_draws(idata, INTERCEPT).rename(columns={"value": "intercept"})
    merged = offsets.merge(intercept.drop(columns="level"), on=DRAW_KEYS, how="left")
    merged["value"] = merged["value"] + merged["intercept"]
    return merged.drop(columns="intercept")


def clean_labels(labels: Iterable[str]) -> list[str]:
    """
    Normalise delimiters in factor levels.

    Underscores, and dots glued to the next character (``"Smith.2010"``),
    become spaces; whitespace runs collapse. A trailing ``"et al."`` is kept.
    """
    out = []
    for label in labels:
        text = str(label).replace("_", " ")
        text = _DOT_DELIM.sub(" ", text)
        out.append(_WS.sub(" ", text).strip())
    return out


def relevel(
    labels: Sequence[str],
    first: str = AVERAGE,
    order: Sequence[str] | None = None,
) -> pd.Categorical:
    """
    Pin a display order on labels, ``first`` leading.

    Parameters
    ----------
    labels : Sequence[str]
        Labels to convert.
    first : str
        Level placed first when present.
    order : Sequence[str], optional
        Order of the remaining levels; levels not listed follow, sorted.
    """
    present = list(dict.fromkeys(labels))
    rest = [lv for lv in present if lv != first]
    if order is not None:
        ordered = [lv for lv in order if lv in rest]
        ordered += sorted(lv for lv in rest if lv not in ordered)
    else:
        ordered = sorted(rest)
    categories = ([first] if first in present else []) + ordered
    return pd.Categorical(labels, categories=categories, ordered=True)


def proportion_draws(
    idata: az.InferenceData,
    factor: str,
    include_average: bool = True,
    order: Sequence[str] | None = None,
) -> pd.DataFrame:
    """
    Posterior co-offending proportions per level of ``factor``.

    Group log-odds (offset + intercept) and, optionally, the grand average
    are mapped through the logistic function, labels are cleaned and the
    ``level`` column is an ordered categorical with "Average" first.
    """
    parts = [group_log_odds(idata, factor)]
    if include_average:
        parts.insert(0, average_log_odds(idata))
    draws = pd.concat(parts, ignore_index=True)
    draws["value"] = stats_utils.inv_logit(draws["value"].to_numpy())
    draws["level"] = relevel(clean_labels(draws["level"]), order=order)
    return draws


def summarize_intervals(
    draws: pd.DataFrame, probs: Sequence[float] = DEFAULT_PROBS
) -> pd.DataFrame:
    """
    Posterior mean, median and equal-tailed credible intervals per level.

    Returns
    -------
    pd.DataFrame
        One row per level with ``mean``, ``median`` and
        ``lower_<pct>`` / ``upper_<pct>`` for each probability.
    """
    for p in probs:
        if not 0.0 < p < 1.0:
            raise ValueError(f"Interval probability must be in (0, 1), got {p}")

    grouped = draws.groupby("level", observed=True, sort=True)["value"]
    out = grouped.agg(mean="mean", median="median")
    for p in sorted(probs):
        pct = int(round(p * 100))
        tail = (1.0 - p) / 2.0
        out[f"lower_{pct}"] = grouped.quantile(tail)
        out[f"upper_{pct}"] = grouped.quantile(1.0 - tail)
    return out.reset_index()


def format_interval(estimate: float, lower: float, upper: float, digits: int = 2) -> str:
    """``estimate [lower, upper]``; the estimate is the posterior median in plots."""
    return f"{estimate:.{digits}f} [{lower:.{digits}f}, {upper:.{digits}f}]"


def widest_interval(summary: pd.DataFrame) -> tuple[str, str]:
    """Column names of the widest interval in a ``summarize_intervals`` table."""
    pcts = [int(c.split("_")[1]) for c in summary.columns if c.startswith("lower_")]
    if not pcts:
        raise ValueError("Summary has no interval columns")
    pct = max(pcts)
    return f"lower_{pct}", f"upper_{pct}"

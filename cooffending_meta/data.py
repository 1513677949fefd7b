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
Study data
----------
Loading, filtering and aggregation of study-level offense / co-offense counts.

Each row of the source sheet reports, for one study and one crime type, the
total number of offenses and how many of those were committed jointly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from os import PathLike

import numpy as np
import pandas as pd

from cooffending_meta import stats_utils

pd.options.mode.copy_on_write = True

logger = logging.getLogger(__name__)

STUDY_COL = "study_n"
AUTHOR_COL = "author"
DOI_COL = "doi"
TYPE_COL = "Type"
OFFENSES_COL = "total_number_offenses"
COOFFENSES_COL = "total_number_cooffenses"
PROP_COL = "prop"

REQUIRED_COLUMNS = (
    STUDY_COL,
    AUTHOR_COL,
    DOI_COL,
    TYPE_COL,
    OFFENSES_COL,
    COOFFENSES_COL,
)
GROUP_KEYS = [STUDY_COL, AUTHOR_COL, TYPE_COL]

DEFAULT_SHEET = "studies"
ALL_YOUTH = "All Youth"
TOTAL_TYPE = "Total"
CRIME_TYPES = ("Violent", "Property", "Other")


class DataValidationError(ValueError):
    """Raised when the study table is missing columns or violates a count invariant."""


@dataclass(frozen=True)
class DataConfig:
    """
    Filtering rules applied before aggregation.

    excluded_dois
        DOIs of records duplicated elsewhere in the sheet. Empty by default:
        the duplicate study is only dropped when its DOI is given here (the
        CLI's ``--exclude-doi``).
    excluded_types
        Sentinel aggregate categories that would double-count offenses.
    crime_types
        Categories kept by the crime-type breakdown.
    """

    excluded_dois: tuple[str, ...] = ()
    excluded_types: tuple[str, ...] = (ALL_YOUTH,)
    crime_types: tuple[str, ...] = CRIME_TYPES


def load_studies(path: str | PathLike, sheet_name: str = DEFAULT_SHEET) -> pd.DataFrame:
    """
    Read the study sheet from a spreadsheet.

    Parameters
    ----------
    path : str | PathLike
        Spreadsheet file (.xlsx).
    sheet_name : str
        Name of the sheet holding the study records.

    Returns
    -------
    pd.DataFrame
        The raw records, restricted to the required columns. Nothing is
        filtered here; see ``clean_studies`` and ``DataConfig.excluded_dois``.
    """
    raw = pd.read_excel(path, sheet_name=sheet_name, engine="openpyxl")
    check_columns(raw)
    logger.info("Loaded %d records from %s [%s]", len(raw), path, sheet_name)
    return raw.loc[:, list(REQUIRED_COLUMNS)]


def check_columns(df: pd.DataFrame) -> None:
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DataValidationError(f"Missing required column(s): {missing}")


def validate_counts(df: pd.DataFrame) -> None:
    """
    Check that counts are non-negative and co-offenses never exceed offenses.

    Raises
    ------
    DataValidationError
        Listing the offending rows (by study and type).
    """
    offenses = df[OFFENSES_COL].to_numpy()
    cooffenses = df[COOFFENSES_COL].to_numpy()
    bad = (offenses < 0) | (cooffenses < 0) | (cooffenses > offenses)
    if np.any(bad):
        rows = df.loc[bad, [STUDY_COL, AUTHOR_COL, TYPE_COL]]
        raise DataValidationError(
            f"Found {int(bad.sum())} record(s) with invalid counts:\n"
            f"{rows.to_string(index=False)}"
        )


def clean_studies(df: pd.DataFrame, config: DataConfig | None = None) -> pd.DataFrame:
    """
    Round counts to integers and drop excluded records.

    The two count columns are rounded to the nearest integer because the
    binomial likelihood needs whole trials and successes. The duplicate
    record(s) listed in ``config.excluded_dois`` and the sentinel aggregate
    categories in ``config.excluded_types`` are removed.
    """
    cfg = config or DataConfig()
    check_columns(df)

    out = df.copy()
    out[OFFENSES_COL] = stats_utils.to_count_array(out[OFFENSES_COL])
    out[COOFFENSES_COL] = stats_utils.to_count_array(out[COOFFENSES_COL])

    if not cfg.excluded_dois:
        logger.warning(
            "No duplicate DOI excluded; pass excluded_dois (--exclude-doi) "
            "to drop the duplicated study"
        )
    dup = out[DOI_COL].isin(cfg.excluded_dois)
    sentinel = out[TYPE_COL].isin(cfg.excluded_types)
    if dup.any():
        logger.info("Dropping %d duplicate record(s) by DOI", int(dup.sum()))
    if sentinel.any():
        logger.info(
            "Dropping %d record(s) in categories %s",
            int(sentinel.sum()),
            list(cfg.excluded_types),
        )
    out = out.loc[~dup & ~sentinel].reset_index(drop=True)

    validate_counts(out)
    return out


def _with_prop(df: pd.DataFrame) -> pd.DataFrame:
    # zero-offense groups yield NaN
    df[PROP_COL] = df[COOFFENSES_COL] / df[OFFENSES_COL].replace(0, np.nan)
    return df


def aggregate_studies(df: pd.DataFrame) -> pd.DataFrame:
    """
    Sum counts per study / author / crime type and derive the observed proportion.

    Returns
    -------
    pd.DataFrame
        One row per (study_n, author, Type) with summed counts and ``prop``.
    """
    grouped = (
        df.groupby(GROUP_KEYS, sort=True, dropna=False)[[OFFENSES_COL, COOFFENSES_COL]]
        .sum()
        .reset_index()
    )
    return _with_prop(grouped)


def restrict_crime_types(
    df: pd.DataFrame, types: tuple[str, ...] = CRIME_TYPES
) -> pd.DataFrame:
    """Keep the given crime-type categories and aggregate them per study."""
    kept = df.loc[df[TYPE_COL].isin(types)]
    dropped = len(df) - len(kept)
    if dropped:
        logger.debug("Crime-type restriction dropped %d record(s)", dropped)
    return aggregate_studies(kept)


def aggregate_totals(
    df: pd.DataFrame, types: tuple[str, ...] = CRIME_TYPES
) -> pd.DataFrame:
    """
    Sum counts to one total per study and author.

    A study that reports any of the crime-type categories in ``types`` is
    totalled over those rows only, so a study-level aggregate row (such as
    ``Type = "All"``) next to its own breakdown is not counted twice. A study
    with no crime-type rows is totalled over whatever rows it has.

    The result is tagged ``Type = "Total"`` so it can be plotted alongside
    the per-type tables.
    """
    keys = [STUDY_COL, AUTHOR_COL]
    is_type = df[TYPE_COL].isin(types)
    has_breakdown = is_type.groupby(
        [df[STUDY_COL], df[AUTHOR_COL]], dropna=False
    ).transform("any")
    kept = df.loc[is_type | ~has_breakdown]
    dropped = len(df) - len(kept)
    if dropped:
        logger.debug(
            "Totals ignored %d aggregate record(s) of studies with a crime-type breakdown",
            dropped,
        )

    grouped = (
        kept.groupby(keys, sort=True, dropna=False)[[OFFENSES_COL, COOFFENSES_COL]]
        .sum()
        .reset_index()
    )
    grouped[TYPE_COL] = TOTAL_TYPE
    return _with_prop(grouped.loc[:, GROUP_KEYS + [OFFENSES_COL, COOFFENSES_COL]])


def prepare_studies(
    path: str | PathLike,
    sheet_name: str = DEFAULT_SHEET,
    config: DataConfig | None = None,
) -> pd.DataFrame:
    """
    Load, clean and aggregate the study sheet.

    The duplicated study is kept unless its DOI is listed in
    ``config.excluded_dois``; a warning is logged when that list is empty.
    """
    return aggregate_studies(clean_studies(load_studies(path, sheet_name), config))


def observed_proportions(df: pd.DataFrame, by: str) -> pd.DataFrame:
    """
    Raw observed proportions per level of ``by``, pooled over its rows.

    Returns
    -------
    pd.DataFrame
        Columns ``level`` and ``prop``.
    """
    pooled = df.groupby(by, sort=True)[[OFFENSES_COL, COOFFENSES_COL]].sum()
    pooled = _with_prop(pooled)
    return pooled[PROP_COL].rename_axis("level").reset_index()

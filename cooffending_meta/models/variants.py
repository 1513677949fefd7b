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
Model variants
--------------
Each variant pairs a formula with the table it is fit to and a prior regime.

- author_type       study (author) and crime-type effects, all categories
- type_only         crime-type effect only
- crime_type        author and crime-type effects, Violent / Property / Other
- totals            author effect on per-study totals across types
- author_type_flat  author_type under effectively non-informative priors
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import pandas as pd

from cooffending_meta import data
from cooffending_meta.formula import ModelFormula, parse_formula
from cooffending_meta.models.hierarchical import (
    ModelDefinition,
    ModelSpecification,
    build_model,
)
from cooffending_meta.models.priors import (
    NON_INFORMATIVE,
    WEAKLY_INFORMATIVE,
    PriorConfig,
)

_LHS = f"{data.COOFFENSES_COL} | trials({data.OFFENSES_COL})"


@dataclass(frozen=True)
class ModelVariant:
    name: str
    formula: str
    prepare: Callable[[pd.DataFrame, data.DataConfig], pd.DataFrame]
    priors: PriorConfig = WEAKLY_INFORMATIVE
    # grouping factor shown on the forest plot
    plot_factor: str = data.AUTHOR_COL

    @property
    def parsed_formula(self) -> ModelFormula:
        return parse_formula(self.formula)

    def prepare_data(
        self, cleaned: pd.DataFrame, config: data.DataConfig | None = None
    ) -> pd.DataFrame:
        """Turn the cleaned (not yet aggregated) study table into this variant's table."""
        return self.prepare(cleaned, config or data.DataConfig())

    def build(self, table: pd.DataFrame) -> ModelDefinition:
        """Build the model on a table from ``prepare_data``."""
        spec = ModelSpecification.from_frame(table, self.parsed_formula)
        return build_model(spec, self.priors)


def _all_types(df: pd.DataFrame, cfg: data.DataConfig) -> pd.DataFrame:
    return data.aggregate_studies(df)


def _crime_types(df: pd.DataFrame, cfg: data.DataConfig) -> pd.DataFrame:
    return data.restrict_crime_types(df, cfg.crime_types)


def _totals(df: pd.DataFrame, cfg: data.DataConfig) -> pd.DataFrame:
    return data.aggregate_totals(df, cfg.crime_types)


VARIANTS: dict[str, ModelVariant] = {
    v.name: v
    for v in (
        ModelVariant(
            name="author_type",
            formula=f"{_LHS} ~ 1 + (1 | {data.AUTHOR_COL}) + (1 | {data.TYPE_COL})",
            prepare=_all_types,
        ),
        ModelVariant(
            name="type_only",
            formula=f"{_LHS} ~ 1 + (1 | {data.TYPE_COL})",
            prepare=_all_types,
            plot_factor=data.TYPE_COL,
        ),
        ModelVariant(
            name="crime_type",
            formula=f"{_LHS} ~ 1 + (1 | {data.AUTHOR_COL}) + (1 | {data.TYPE_COL})",
            prepare=_crime_types,
            plot_factor=data.TYPE_COL,
        ),
        ModelVariant(
            name="totals",
            formula=f"{_LHS} ~ 1 + (1 | {data.AUTHOR_COL})",
            prepare=_totals,
        ),
        ModelVariant(
            name="author_type_flat",
            formula=f"{_LHS} ~ 1 + (1 | {data.AUTHOR_COL}) + (1 | {data.TYPE_COL})",
            prepare=_all_types,
            priors=NON_INFORMATIVE,
        ),
    )
}


def get_variant(name: str) -> ModelVariant:
    try:
        return VARIANTS[name]
    except KeyError:
        raise ValueError(
            f"Unknown model variant {name!r}; choose from {sorted(VARIANTS)}"
        ) from None

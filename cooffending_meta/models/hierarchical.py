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
Hierarchical binomial model
===========================

Observation (per study record i):
    y_i ~ Binomial(n_i, p_i),   p_i = logistic(θ_i)

Latent logit:
    θ_i = Intercept + Σ_g r_g[level_g(i)]

Random intercepts (non-centred, one block per grouping factor g):
    r_g = sd_g * z_g,   z_g ~ N(0, 1)

Glossary / symbol map
---------------------
Intercept     fixed intercept; grand-average co-offending log-odds
sd_<g>        between-level standard deviation of factor g
z_<g>         standardised offsets per level of g
r_<g>         level offsets from the intercept (log-odds)
theta         latent logit per record

Dims:
    obs: number of study records
    <g>: levels of each grouping factor (e.g. "author", "Type")
"""

from __future__ import annotations

import logging
from typing import Mapping

import numpy as np
import pandas as pd
import pymc as pm

from cooffending_meta import stats_utils
from cooffending_meta.formula import ModelFormula
from cooffending_meta.models.priors import WEAKLY_INFORMATIVE, PriorConfig

logger = logging.getLogger(__name__)

INTERCEPT = "Intercept"
OBS_DIM = "obs"


def sd_name(factor: str) -> str:
    return f"sd_{factor}"


def offset_name(factor: str) -> str:
    return f"r_{factor}"


class ModelSpecification:
    """
    Specifies the inputs required to build the model.

    Attributes
    ----------
    successes : (N,) int
        Co-offense counts.
    trials : (N,) int
        Offense counts.
    groups : dict[str, (N,) str]
        Group label per record for each grouping factor, in formula order.
    """

    def __init__(
        self,
        successes: list | pd.Series | np.ndarray,
        trials: list | pd.Series | np.ndarray,
        groups: Mapping[str, list | pd.Series | np.ndarray],
    ):
        """
        Parameters
        ----------
        successes : list | pd.Series | np.ndarray
            Co-offense counts; rounded to integers.
        trials : list | pd.Series | np.ndarray
            Offense counts; rounded to integers.
        groups : Mapping[str, array-like]
            Grouping factor name -> label per record.
        """
        self.successes = stats_utils.to_count_array(successes)
        self.trials = stats_utils.to_count_array(trials)
        self.groups: dict[str, np.ndarray] = {
            name: stats_utils.to_label_array(labels) for name, labels in groups.items()
        }

        N = self.trials.shape[0]
        if self.successes.shape[0] != N:
            raise ValueError(
                f"successes has N={self.successes.shape[0]}, expected {N}."
            )
        for name, labels in self.groups.items():
            if labels.shape[0] != N:
                raise ValueError(
                    f"All inputs must share the same N; {name} has N={labels.shape[0]}, expected {N}."
                )
        if not self.groups:
            raise ValueError("At least one grouping factor is required.")

        if (self.trials < 0).any() or (self.successes < 0).any():
            raise ValueError("Counts must be non-negative.")
        if (self.successes > self.trials).any():
            i = int(np.argmax(self.successes > self.trials))
            raise ValueError(
                f"successes exceed trials at index {i}: "
                f"{self.successes[i]} > {self.trials[i]}"
            )

    @classmethod
    def from_frame(cls, df: pd.DataFrame, formula: ModelFormula) -> "ModelSpecification":
        """Pull the response, trials and group columns named by ``formula``."""
        missing = [
            c
            for c in (formula.response, formula.trials, *formula.group_factors)
            if c not in df.columns
        ]
        if missing:
            raise ValueError(f"Data is missing formula column(s): {missing}")
        return cls(
            successes=df[formula.response],
            trials=df[formula.trials],
            groups={g: df[g] for g in formula.group_factors},
        )

    @property
    def n_obs(self) -> int:
        return int(self.trials.shape[0])


class ModelDefinition:
    """
    Defines the built model and its inputs.
    """

    spec: ModelSpecification
    priors: PriorConfig
    group_idx: dict[str, np.ndarray]
    levels: dict[str, np.ndarray]
    model: pm.Model

    def __init__(
        self,
        spec: ModelSpecification,
        priors: PriorConfig,
        group_idx: dict[str, np.ndarray],
        levels: dict[str, np.ndarray],
        model: pm.Model,
    ):
        self.spec = spec
        self.priors = priors
        self.group_idx = group_idx
        self.levels = levels
        self.model = model

    @property
    def factors(self) -> list[str]:
        return list(self.levels)


def build_model(
    spec: ModelSpecification, priors: PriorConfig | None = None
) -> ModelDefinition:
    """
    Build a hierarchical logistic-binomial model with a fixed intercept and
    one block of random intercepts per grouping factor.

    Parameters
    ----------
    spec : ModelSpecification
        Validated counts and group labels.
    priors : PriorConfig, optional
        Prior regime; defaults to weakly informative.

    Returns
    -------
    ModelDefinition
    """
    cfg = priors or WEAKLY_INFORMATIVE

    group_idx: dict[str, np.ndarray] = {}
    levels: dict[str, np.ndarray] = {}
    for name, labels in spec.groups.items():
        group_idx[name], levels[name] = stats_utils.index_levels(labels)

    coords = {OBS_DIM: np.arange(spec.n_obs), **levels}

    with pm.Model(coords=coords) as model:
        # outcome data
        trials = pm.Data("trials", spec.trials, dims=OBS_DIM)
        idx_data = {
            name: pm.Data(f"{name}_idx", idx, dims=OBS_DIM)
            for name, idx in group_idx.items()
        }

        intercept = pm.StudentT(
            INTERCEPT, nu=cfg.nu, mu=cfg.intercept_mu, sigma=cfg.intercept_sigma
        )

        theta = intercept
        for name in group_idx:
            sd = pm.HalfStudentT(sd_name(name), nu=cfg.nu, sigma=cfg.group_sd_sigma)
            z = pm.Normal(f"z_{name}", 0.0, 1.0, dims=name)
            r = pm.Deterministic(offset_name(name), sd * z, dims=name)
            theta = theta + r[idx_data[name]]

        theta = pm.Deterministic("theta", theta, dims=OBS_DIM)

        # likelihood of observed co-offenses
        pm.Binomial(
            "y",
            n=trials,
            logit_p=theta,
            observed=spec.successes,
            dims=OBS_DIM,
        )

    logger.debug(
        "Built model with %d records, factors %s (%s)",
        spec.n_obs,
        {k: len(v) for k, v in levels.items()},
        cfg.describe(),
    )

    return ModelDefinition(
        spec=spec,
        priors=cfg,
        group_idx=group_idx,
        levels=levels,
        model=model,
    )

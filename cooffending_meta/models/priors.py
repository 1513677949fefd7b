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
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PriorConfig:
    """
    Prior hyperparameters, all on the *logit* scale.

    Intercept ~ StudentT(nu, intercept_mu, intercept_sigma)
    sd_g      ~ HalfStudentT(nu, group_sd_sigma)       (per grouping factor)

    Notes on interpretation:
    - intercept_sigma=1.5 keeps the grand-average proportion broadly within
      (0.05, 0.95) a priori; very large values are effectively flat in logits
      but put most prior mass on proportions near 0 or 1.
    - group_sd_sigma sets how far studies / crime types may plausibly sit
      from the average before partial pooling pulls them back.
    """

    name: str
    intercept_mu: float = 0.0
    intercept_sigma: float = 1.5
    group_sd_sigma: float = 1.0
    nu: float = 3.0

    def describe(self) -> str:
        return (
            f"{self.name}: Intercept ~ StudentT({self.nu:g}, {self.intercept_mu:g}, "
            f"{self.intercept_sigma:g}), sd ~ HalfStudentT({self.nu:g}, "
            f"{self.group_sd_sigma:g})"
        )


WEAKLY_INFORMATIVE = PriorConfig(name="weakly_informative")

# wide enough to be effectively non-informative on the probability scale
NON_INFORMATIVE = PriorConfig(
    name="non_informative",
    intercept_sigma=100.0,
    group_sd_sigma=100.0,
)

PRIORS = {p.name: p for p in (WEAKLY_INFORMATIVE, NON_INFORMATIVE)}

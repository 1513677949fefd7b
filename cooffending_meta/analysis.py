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
Co-offending meta-analysis
--------------------------
Loads the study sheet, fits the requested model variants and writes one forest
plot per variant.

Usage:
  cooffending-meta studies.xlsx [--sheet studies] [--variant author_type ...]
      [--exclude-doi 10.xxxx/yyyy] [--draws 2000] [--tune 2000] [--chains 4]
      [--out-dir figures] [--diagnostics]
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd

from cooffending_meta import data, plotting, posterior, sampling
from cooffending_meta.models.variants import VARIANTS, ModelVariant, get_variant

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class VariantResult:
    variant: ModelVariant
    fit: sampling.FitResult
    draws: pd.DataFrame
    summary: pd.DataFrame
    observed: pd.DataFrame
    convergence: dict


def observed_with_average(table: pd.DataFrame, factor: str) -> pd.DataFrame:
    """Raw proportions per level of ``factor`` plus the pooled proportion as "Average"."""
    observed = data.observed_proportions(table, factor)
    offenses = table[data.OFFENSES_COL].sum()
    pooled = table[data.COOFFENSES_COL].sum() / offenses if offenses else float("nan")
    average = pd.DataFrame({"level": [posterior.AVERAGE], "prop": [pooled]})
    return pd.concat([average, observed], ignore_index=True)


def run_variant(
    variant: ModelVariant,
    cleaned: pd.DataFrame,
    data_config: data.DataConfig,
    sampler: sampling.SamplerConfig,
    diagnostics: bool = False,
) -> VariantResult:
    logger.info("Variant %s: %s", variant.name, variant.formula)
    logger.info("Priors %s", variant.priors.describe())

    table = variant.prepare_data(cleaned, data_config)
    definition = variant.build(table)
    fit = sampling.fit_model(definition, sampler)
    convergence = sampling.check_convergence(fit)
    logger.info("\n%s", fit.summary())

    if diagnostics:
        sampling.sample_posterior_predictive(fit)
        plotting.plot_trace(fit)
        plotting.plot_ppc(fit)

    draws = posterior.proportion_draws(fit.idata, variant.plot_factor)
    summary = posterior.summarize_intervals(draws)
    observed = observed_with_average(table, variant.plot_factor)

    return VariantResult(
        variant=variant,
        fit=fit,
        draws=draws,
        summary=summary,
        observed=observed,
        convergence=convergence,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Bayesian meta-analysis of co-offending proportions"
    )
    parser.add_argument("path", type=Path, help="Spreadsheet with the study sheet")
    parser.add_argument("--sheet", default=data.DEFAULT_SHEET, help="Sheet name")
    parser.add_argument(
        "--variant",
        action="append",
        choices=sorted(VARIANTS),
        help="Model variant(s) to fit (repeatable; default author_type)",
    )
    parser.add_argument(
        "--exclude-doi",
        action="append",
        default=[],
        help="DOI of a duplicate record to drop (repeatable)",
    )
    parser.add_argument("--seed", type=int, default=sampling.SamplerConfig.seed)
    parser.add_argument("--chains", type=int, default=sampling.SamplerConfig.chains)
    parser.add_argument("--cores", type=int, default=None)
    parser.add_argument("--draws", type=int, default=sampling.SamplerConfig.draws)
    parser.add_argument("--tune", type=int, default=sampling.SamplerConfig.tune)
    parser.add_argument(
        "--target-accept", type=float, default=sampling.SamplerConfig.target_accept
    )
    parser.add_argument(
        "--max-treedepth", type=int, default=sampling.SamplerConfig.max_treedepth
    )
    parser.add_argument("--out-dir", type=Path, default=Path("figures"))
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Show trace and posterior predictive plots on screen",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    if not args.diagnostics:
        plt.switch_backend("Agg")

    data_config = data.DataConfig(excluded_dois=tuple(args.exclude_doi))
    sampler = sampling.SamplerConfig(
        seed=args.seed,
        chains=args.chains,
        cores=args.cores,
        draws=args.draws,
        tune=args.tune,
        target_accept=args.target_accept,
        max_treedepth=args.max_treedepth,
    )

    cleaned = data.clean_studies(data.load_studies(args.path, args.sheet), data_config)

    for name in args.variant or ["author_type"]:
        result = run_variant(
            get_variant(name), cleaned, data_config, sampler, args.diagnostics
        )
        fig = plotting.forest_plot(
            result.draws,
            result.summary,
            observed=result.observed,
            title=f"Co-offending by {result.variant.plot_factor} ({name})",
        )
        plotting.save_figure(fig, args.out_dir / f"forest_{name}.png")

    if args.diagnostics:
        plt.show()


if __name__ == "__main__":
    main()

"""
Smoke tests for sampling and the pipeline glue
(cooffending_meta/sampling.py, cooffending_meta/analysis.py).
"""
import dataclasses

import matplotlib.pyplot as plt
import pandas as pd
import pytest

from cooffending_meta import analysis, data, plotting, posterior, sampling
from cooffending_meta.data import DataConfig
from cooffending_meta.models.variants import get_variant

from .conftest import DUPLICATE_DOI

TINY = sampling.SamplerConfig(
    seed=7, chains=2, cores=1, draws=60, tune=60, target_accept=0.9, progressbar=False
)


def test_sampler_defaults():
    cfg = sampling.SamplerConfig()
    assert cfg.chains == 4
    assert 0.0 < cfg.target_accept < 1.0
    assert cfg.max_treedepth > 10


@pytest.fixture(scope="module")
def tiny_fit():
    table = pd.DataFrame(
        {
            data.AUTHOR_COL: ["a", "a", "b", "b", "c", "c"],
            data.TYPE_COL: ["V", "P", "V", "P", "V", "P"],
            data.OFFENSES_COL: [40, 60, 30, 80, 50, 20],
            data.COOFFENSES_COL: [12, 30, 9, 35, 10, 8],
        }
    )
    definition = get_variant("author_type").build(table)
    return sampling.fit_model(definition, TINY)


def test_fit_model_returns_draws(tiny_fit):
    post = tiny_fit.idata.posterior
    assert post.sizes["chain"] == 2
    assert post.sizes["draw"] == 60
    assert post["r_author"].sizes["author"] == 3
    assert tiny_fit.sampling_time > 0


def test_check_convergence_reports(tiny_fit):
    diag = sampling.check_convergence(tiny_fit)
    for key in ("Intercept_rhat_max", "sd_author_ess_min", "sd_Type_rhat_max", "divergences"):
        assert key in diag
    assert isinstance(diag["all_ok"], bool)


def test_fit_summary_terms(tiny_fit):
    summary = tiny_fit.summary()
    assert set(summary.index) == {"Intercept", "sd_author", "sd_Type"}


def test_proportions_from_fit(tiny_fit):
    draws = posterior.proportion_draws(tiny_fit.idata, "Type")
    summary = posterior.summarize_intervals(draws)
    assert list(summary["level"].astype(str)) == ["Average", "P", "V"]
    assert (summary["lower_95"] <= summary["upper_95"]).all()


def test_observed_with_average(raw_studies):
    cleaned = data.clean_studies(raw_studies, DataConfig(excluded_dois=(DUPLICATE_DOI,)))
    table = data.aggregate_studies(cleaned)
    observed = analysis.observed_with_average(table, data.TYPE_COL)

    assert observed["level"].iloc[0] == posterior.AVERAGE
    pooled = table[data.COOFFENSES_COL].sum() / table[data.OFFENSES_COL].sum()
    assert observed["prop"].iloc[0] == pytest.approx(pooled)
    assert set(observed["level"]) == {"Average", "Violent", "Property", "Other"}


def test_parse_args_maps_sampler_flags():
    args = analysis.parse_args(
        ["s.xlsx", "--variant", "totals", "--variant", "crime_type", "--draws", "500",
         "--max-treedepth", "12", "--exclude-doi", DUPLICATE_DOI]
    )
    assert args.variant == ["totals", "crime_type"]
    assert args.draws == 500
    assert args.max_treedepth == 12
    assert args.exclude_doi == [DUPLICATE_DOI]
    assert args.target_accept == sampling.SamplerConfig.target_accept


def test_plot_ppc_requires_predictive_draws(tiny_fit):
    with pytest.raises(ValueError, match="posterior_predictive"):
        plotting.plot_ppc(tiny_fit)


def test_posterior_predictive_and_diagnostic_plots(tiny_fit):
    fit = dataclasses.replace(tiny_fit, idata=tiny_fit.idata.copy())
    idata = sampling.sample_posterior_predictive(fit)

    assert "posterior_predictive" in idata
    assert idata.posterior_predictive["y"].sizes["obs"] == 6

    plt.close("all")
    plotting.plot_trace(fit)
    plotting.plot_ppc(fit, num_pp_samples=20)
    assert plt.get_fignums()
    plt.close("all")


def test_main_writes_forest_plot(tmp_path, raw_studies):
    path = tmp_path / "studies.xlsx"
    raw_studies.to_excel(path, sheet_name=data.DEFAULT_SHEET, index=False)
    out_dir = tmp_path / "figs"

    analysis.main(
        [str(path), "--variant", "totals", "--draws", "50", "--tune", "50",
         "--chains", "2", "--cores", "1", "--exclude-doi", DUPLICATE_DOI,
         "--out-dir", str(out_dir), "--log-level", "WARNING"]
    )

    figure = out_dir / "forest_totals.png"
    assert figure.exists()
    assert figure.stat().st_size > 0

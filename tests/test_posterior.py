"""
Tests for draw extraction, back-transformation and intervals
(cooffending_meta/posterior.py, cooffending_meta/stats_utils.py).
"""
import numpy as np
import pandas as pd
import pytest

from cooffending_meta import posterior, stats_utils


@pytest.mark.parametrize("x", [-700.0, -30.0, -1.0, 0.0, 2.5, 30.0])
def test_inv_logit_in_unit_interval(x):
    p = float(stats_utils.inv_logit(x))
    assert 0.0 <= p <= 1.0
    if abs(x) < 30:
        assert 0.0 < p < 1.0


def test_inv_logit_matches_logistic_formula():
    x = np.linspace(-5, 5, 11)
    expected = np.exp(x) / (1 + np.exp(x))
    np.testing.assert_allclose(stats_utils.inv_logit(x), expected)
    np.testing.assert_allclose(stats_utils.logit(stats_utils.inv_logit(x)), x)


def test_to_count_array_rounds_and_rejects_nan():
    np.testing.assert_array_equal(stats_utils.to_count_array([1.4, 2.6, 3]), [1, 3, 3])
    with pytest.raises(ValueError, match="fully observed"):
        stats_utils.to_count_array([1.0, None])


def test_tidy_draws_long_format(synthetic_idata):
    df = posterior.tidy_draws(synthetic_idata, "r_author")
    assert list(df.columns) == ["chain", "draw", "level", "value"]
    assert len(df) == 2 * 200 * 3
    assert set(df["level"]) == {"Carrington", "Reiss_Farrington", "van.Mastrigt"}

    scalar = posterior.tidy_draws(synthetic_idata, "Intercept")
    assert len(scalar) == 2 * 200
    assert set(scalar["level"]) == {"Intercept"}


def test_group_log_odds_adds_intercept_per_draw(synthetic_idata):
    df = posterior.group_log_odds(synthetic_idata, "Type")
    post = synthetic_idata.posterior
    expected = post["Intercept"] + post["r_Type"].sel(Type="Violent")

    got = (
        df[df["level"] == "Violent"]
        .sort_values(["chain", "draw"])["value"]
        .to_numpy()
    )
    np.testing.assert_allclose(got, expected.values.ravel())


def test_clean_labels():
    assert posterior.clean_labels(
        ["Reiss_Farrington", "van.Mastrigt", "Smith  et al.", " Average "]
    ) == ["Reiss Farrington", "van Mastrigt", "Smith et al.", "Average"]


def test_relevel_pins_average_first():
    cat = posterior.relevel(["Violent", "Average", "Other", "Property"])
    assert list(cat.categories) == ["Average", "Other", "Property", "Violent"]

    ordered = posterior.relevel(
        ["Violent", "Average", "Other", "Property"], order=["Violent", "Property"]
    )
    assert list(ordered.categories) == ["Average", "Violent", "Property", "Other"]


def test_proportion_draws_are_probabilities(synthetic_idata):
    draws = posterior.proportion_draws(synthetic_idata, "author")
    assert draws["value"].between(0, 1, inclusive="neither").all()
    assert list(draws["level"].cat.categories) == [
        "Average",
        "Carrington",
        "Reiss Farrington",
        "van Mastrigt",
    ]
    assert (draws["level"] == "Average").sum() == 2 * 200


def test_interval_bounds_contain_median(synthetic_idata):
    draws = posterior.proportion_draws(synthetic_idata, "Type")
    summary = posterior.summarize_intervals(draws)

    assert len(summary) == 4
    for pct in (80, 95):
        assert (summary[f"lower_{pct}"] <= summary["median"]).all()
        assert (summary["median"] <= summary[f"upper_{pct}"]).all()
    assert (summary["lower_95"] <= summary["lower_80"]).all()
    assert (summary["upper_80"] <= summary["upper_95"]).all()


def _skewed_draws():
    # 92% of the mass near zero, a thin cluster near one
    values = np.concatenate([np.full(920, 0.001), np.full(80, 0.999)])
    return pd.DataFrame({"level": ["Average"] * values.size, "value": values})


def test_median_inside_intervals_for_skewed_draws():
    summary = posterior.summarize_intervals(_skewed_draws()).iloc[0]

    # the mean is pulled outside the 80% interval; the median is not
    assert summary["mean"] > summary["upper_80"]
    for pct in (80, 95):
        assert summary[f"lower_{pct}"] <= summary["median"] <= summary[f"upper_{pct}"]
    assert summary["median"] == pytest.approx(0.001)


def test_summarize_intervals_quantiles():
    draws = pd.DataFrame({"level": ["a"] * 101, "value": np.linspace(0, 1, 101)})
    summary = posterior.summarize_intervals(draws, probs=(0.9,)).iloc[0]
    assert summary["mean"] == pytest.approx(0.5)
    assert summary["lower_90"] == pytest.approx(0.05)
    assert summary["upper_90"] == pytest.approx(0.95)


def test_summarize_intervals_rejects_bad_prob():
    draws = pd.DataFrame({"level": ["a"], "value": [0.5]})
    with pytest.raises(ValueError):
        posterior.summarize_intervals(draws, probs=(1.5,))


def test_widest_interval_and_format():
    summary = pd.DataFrame(columns=["level", "mean", "lower_80", "upper_80", "lower_95", "upper_95"])
    assert posterior.widest_interval(summary) == ("lower_95", "upper_95")
    assert posterior.format_interval(0.314, 0.2, 0.45) == "0.31 [0.20, 0.45]"

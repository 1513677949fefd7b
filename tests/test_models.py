"""
Tests for the hierarchical binomial model graph and the model variants
(cooffending_meta/models/).
"""
import numpy as np
import pytest

from cooffending_meta import data
from cooffending_meta.data import DataConfig
from cooffending_meta.models.hierarchical import ModelSpecification, build_model
from cooffending_meta.models.priors import NON_INFORMATIVE, PRIORS, WEAKLY_INFORMATIVE
from cooffending_meta.models.variants import VARIANTS, get_variant

from .conftest import DUPLICATE_DOI


def _spec():
    return ModelSpecification(
        successes=[3, 5.4, 0, 7],
        trials=[10, 12, 4, 7],
        groups={"author": ["a", "b", "a", "c"], "Type": ["V", "P", "P", "V"]},
    )


def test_specification_rounds_counts():
    spec = _spec()
    np.testing.assert_array_equal(spec.successes, [3, 5, 0, 7])
    assert spec.n_obs == 4


@pytest.mark.parametrize(
    "kwargs, message",
    [
        (dict(successes=[1, 2], trials=[3], groups={"g": ["a"]}), "successes"),
        (dict(successes=[1], trials=[3], groups={"g": ["a", "b"]}), "same N"),
        (dict(successes=[4], trials=[3], groups={"g": ["a"]}), "exceed"),
        (dict(successes=[-1], trials=[3], groups={"g": ["a"]}), "non-negative"),
        (dict(successes=[1], trials=[3], groups={}), "grouping factor"),
    ],
)
def test_specification_validation(kwargs, message):
    with pytest.raises(ValueError, match=message):
        ModelSpecification(**kwargs)


def test_build_model_variables_and_coords():
    definition = build_model(_spec())
    model = definition.model

    names = set(model.named_vars)
    for var in ("Intercept", "sd_author", "r_author", "sd_Type", "r_Type", "theta", "y"):
        assert var in names
    assert list(model.coords["author"]) == ["a", "b", "c"]
    assert list(model.coords["Type"]) == ["P", "V"]
    np.testing.assert_array_equal(definition.group_idx["author"], [0, 1, 0, 2])
    assert definition.factors == ["author", "Type"]
    assert definition.priors is WEAKLY_INFORMATIVE


def test_build_model_initial_logp_is_finite():
    model = build_model(_spec(), NON_INFORMATIVE).model
    logp = model.compile_logp()(model.initial_point())
    assert np.isfinite(logp)


def test_prior_presets():
    assert set(PRIORS) == {"weakly_informative", "non_informative"}
    assert NON_INFORMATIVE.intercept_sigma > WEAKLY_INFORMATIVE.intercept_sigma
    assert "StudentT" in WEAKLY_INFORMATIVE.describe()


def test_get_variant_unknown():
    with pytest.raises(ValueError, match="Unknown model variant"):
        get_variant("nope")


@pytest.mark.parametrize("name", sorted(VARIANTS))
def test_every_variant_builds(name, raw_studies):
    config = DataConfig(excluded_dois=(DUPLICATE_DOI,))
    cleaned = data.clean_studies(raw_studies, config)
    variant = get_variant(name)

    table = variant.prepare_data(cleaned, config)
    definition = variant.build(table)

    assert definition.factors == list(variant.parsed_formula.group_factors)
    assert variant.plot_factor in definition.factors
    assert definition.spec.n_obs == len(table)


def test_crime_type_variant_restricts_types(raw_studies):
    cleaned = data.clean_studies(raw_studies)
    table = get_variant("crime_type").prepare_data(cleaned)
    assert set(table[data.TYPE_COL]) <= set(data.CRIME_TYPES)

from __future__ import annotations

from types import SimpleNamespace

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest
import xarray as xr

# ---------------------------------------------------------------------------
# Small synthetic study sheet and posterior used across tests. The sheet has
# fractional counts, one duplicated record (by DOI) and one "All Youth" row,
# so cleaning and aggregation are exercised without production data.
# ---------------------------------------------------------------------------

TEST_SEED = 1337
DUPLICATE_DOI = "10.1000/dup.2011"

AUTHORS = ("Carrington", "Reiss_Farrington", "van.Mastrigt")
TYPES = ("Violent", "Property", "Other")


@pytest.fixture
def raw_studies() -> pd.DataFrame:
    rows = [
        # study_n, author, doi, Type, offenses, cooffenses
        (1, "Carrington", "10.1000/a", "Violent", 120.4, 40.6),
        (1, "Carrington", "10.1000/a", "Property", 300.0, 150.2),
        (1, "Carrington", "10.1000/a", "Property", 50.0, 20.0),
        (1, "Carrington", "10.1000/a", "Other", 80.0, 10.0),
        (2, "Reiss_Farrington", "10.1000/b", "Violent", 60.0, 30.0),
        (2, "Reiss_Farrington", "10.1000/b", "Property", 90.5, 60.4),
        (2, "Reiss_Farrington", "10.1000/b", "All Youth", 150.5, 90.4),
        (3, "van.Mastrigt", "10.1000/c", "Violent", 200.0, 44.0),
        (3, "van.Mastrigt", "10.1000/c", "Other", 0.0, 0.0),
        (4, "van.Mastrigt", DUPLICATE_DOI, "Violent", 200.0, 44.0),
    ]
    return pd.DataFrame(
        rows,
        columns=[
            "study_n",
            "author",
            "doi",
            "Type",
            "total_number_offenses",
            "total_number_cooffenses",
        ],
    )


@pytest.fixture
def synthetic_idata() -> SimpleNamespace:
    """Posterior-shaped draws for Intercept, r_author and r_Type (2 chains x 200 draws)."""
    rng = np.random.default_rng(TEST_SEED)
    chains, draws = 2, 200
    coords = {
        "chain": np.arange(chains),
        "draw": np.arange(draws),
        "author": list(AUTHORS),
        "Type": list(TYPES),
    }
    posterior = xr.Dataset(
        {
            "Intercept": (("chain", "draw"), rng.normal(-0.5, 0.2, (chains, draws))),
            "r_author": (
                ("chain", "draw", "author"),
                rng.normal([0.3, -0.4, 0.1], 0.3, (chains, draws, len(AUTHORS))),
            ),
            "r_Type": (
                ("chain", "draw", "Type"),
                rng.normal([0.2, 0.5, -0.6], 0.25, (chains, draws, len(TYPES))),
            ),
        },
        coords=coords,
    )
    return SimpleNamespace(posterior=posterior)

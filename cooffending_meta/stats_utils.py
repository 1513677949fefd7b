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
import numpy as np
import pandas as pd
from scipy import special


def to_float64_array(x: list | pd.Series | np.ndarray | None) -> np.ndarray:
    """
    Convert input to a NumPy array of float64, with None as np.nan.

    Parameters
    ----------
    x : list | pd.Series | np.ndarray | None
        Input data to be converted.

    Returns
    -------
    np.ndarray
        Converted array of type float64, with None values as np.nan.
    """
    return (
        pd.Series(x, dtype="float64")
        .convert_dtypes()
        .to_numpy(dtype="float64", na_value=np.nan, copy=True)
    )


def to_count_array(x: list | pd.Series | np.ndarray) -> np.ndarray:
    """
    Round input to the nearest integer and convert to a NumPy array of int64.

    Binomial trials and successes must be whole numbers, so fractional
    counts (e.g. from weighted reporting in the source studies) are rounded
    half to even, as ``np.rint`` does.

    Parameters
    ----------
    x : list | pd.Series | np.ndarray
        Counts to be converted; must be fully observed.

    Returns
    -------
    np.ndarray
        Rounded counts of type int64.
    """
    values = to_float64_array(x)
    if np.isnan(values).any():
        raise ValueError("counts must be fully observed (no NaNs).")
    return np.rint(values).astype(np.int64)


def to_label_array(x: list | pd.Series | np.ndarray) -> np.ndarray:
    """
    Convert input to a NumPy array of str labels.

    Parameters
    ----------
    x : list | pd.Series | np.ndarray
        Group labels (author, crime type, ...).

    Returns
    -------
    np.ndarray
        Labels as an array of Python strings.
    """
    return pd.Series(x).astype(str).to_numpy(dtype=object, copy=True)


def inv_logit(x: float | list | pd.Series | np.ndarray) -> np.ndarray:
    """
    Logistic map from log-odds to probability, p = exp(x) / (1 + exp(x)).

    Parameters
    ----------
    x : float | list | pd.Series | np.ndarray
        Values on the log-odds scale.

    Returns
    -------
    np.ndarray
        Probabilities. Finite inputs map into (0, 1), although float64
        saturates to 0 or 1 for |x| beyond ~37.
    """
    return special.expit(np.asarray(x, dtype=np.float64))


def logit(p: float | list | pd.Series | np.ndarray) -> np.ndarray:
    """
    Log-odds of a probability.

    Parameters
    ----------
    p : float | list | pd.Series | np.ndarray
        Probabilities in (0, 1).

    Returns
    -------
    np.ndarray
        Values on the log-odds scale.
    """
    return special.logit(np.asarray(p, dtype=np.float64))


def index_levels(labels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Encode labels as integer indices into their sorted unique levels.

    Parameters
    ----------
    labels : np.ndarray
        Group labels, one per observation.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        ``(idx, levels)`` such that ``levels[idx]`` reproduces ``labels``.
    """
    levels, idx = np.unique(np.asarray(labels, dtype=str), return_inverse=True)
    return idx.astype(np.int64), levels

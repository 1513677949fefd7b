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
Model formulas
--------------
Parser for the random-intercept binomial formulas used by the model variants:

    successes | trials(n) ~ 1 + (1 | group_a) + (1 | group_b)

Only a fixed intercept and random intercepts are supported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_RESPONSE = re.compile(r"^(?P<y>\w+)\s*\|\s*trials\(\s*(?P<n>\w+)\s*\)$")
_GROUP = re.compile(r"^\(\s*1\s*\|\s*(?P<g>\w+)\s*\)$")


class FormulaError(ValueError):
    """Raised for formulas outside the supported random-intercept grammar."""


@dataclass(frozen=True)
class ModelFormula:
    response: str
    trials: str
    group_factors: tuple[str, ...]

    def __str__(self) -> str:
        terms = ["1"] + [f"(1 | {g})" for g in self.group_factors]
        return f"{self.response} | trials({self.trials}) ~ {' + '.join(terms)}"


def _split_terms(rhs: str) -> list[str]:
    # split on '+' outside parentheses
    terms, depth, current = [], 0, []
    for ch in rhs:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise FormulaError(f"Unbalanced parentheses in {rhs!r}")
        if ch == "+" and depth == 0:
            terms.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    if depth != 0:
        raise FormulaError(f"Unbalanced parentheses in {rhs!r}")
    terms.append("".join(current).strip())
    return terms


def parse_formula(formula: str) -> ModelFormula:
    """
    Parse a binomial random-intercept formula.

    Parameters
    ----------
    formula : str
        e.g. ``"total_number_cooffenses | trials(total_number_offenses) ~ 1 + (1 | author)"``.
        The fixed intercept ``1`` may be omitted; it is always included.

    Returns
    -------
    ModelFormula

    Raises
    ------
    FormulaError
        If the formula has no ``~``, no ``trials()`` term, duplicate or
        unsupported terms, or no group factor.
    """
    if formula.count("~") != 1:
        raise FormulaError(f"Expected exactly one '~' in {formula!r}")
    lhs, rhs = (part.strip() for part in formula.split("~"))

    m = _RESPONSE.match(lhs)
    if m is None:
        raise FormulaError(
            f"Left-hand side must be 'successes | trials(n)', got {lhs!r}"
        )

    groups: list[str] = []
    for term in _split_terms(rhs):
        if term == "1":
            continue
        if term in ("", "0", "-1"):
            raise FormulaError(f"Unsupported term {term!r}: intercept is required")
        g = _GROUP.match(term)
        if g is None:
            raise FormulaError(f"Unsupported term {term!r}; only (1 | group) allowed")
        if g.group("g") in groups:
            raise FormulaError(f"Duplicate group term for {g.group('g')!r}")
        groups.append(g.group("g"))

    if not groups:
        raise FormulaError("Formula needs at least one (1 | group) term")

    return ModelFormula(
        response=m.group("y"), trials=m.group("n"), group_factors=tuple(groups)
    )

"""
Metadata filter builder.

Translates CardFilters into a conjunctive predicate, either as a SQLAlchemy
clause for the pgvector store or as a Python check for the in-memory store.
Both forms share the same grade parsing rules:

- Strip every character that is not a digit or '.' from the grade label
  ("PSA 9.5" -> "9.5")
- A label with nothing parseable left ("Gem Mint") never satisfies a grade
  bound
"""

import re
from typing import Optional

from sqlalchemy import Float, String, and_, case, cast, func, true
from sqlalchemy.sql.elements import ColumnElement

from .models import Card, CardFilters

GRADE_STRIP_PATTERN = r"[^0-9.]"
GRADE_NUMBER_PATTERN = r"^([0-9]+\.?[0-9]*|\.[0-9]+)$"

_grade_strip_re = re.compile(GRADE_STRIP_PATTERN)
_grade_number_re = re.compile(GRADE_NUMBER_PATTERN)


def extract_grade(label: Optional[str]) -> Optional[float]:
    """
    Extract the numeric grade from a grade label.

    Args:
        label: Stored grade label, e.g. "PSA 10"

    Returns:
        The grade as a float, or None if the label holds no number
    """
    if not label:
        return None
    stripped = _grade_strip_re.sub("", label)
    if not _grade_number_re.match(stripped):
        return None
    return float(stripped)


def _contains_ci(value: Optional[str], needle: str) -> bool:
    return value is not None and needle.lower() in value.lower()


def matches(card: Card, filters: CardFilters) -> bool:
    """Evaluate the filter predicate against a card in Python."""
    if filters.player and not _contains_ci(card.player, filters.player):
        return False
    if filters.year and card.year != filters.year:
        return False
    if filters.brand and not _contains_ci(card.brand, filters.brand):
        return False

    if filters.has_grade_bound:
        grade = extract_grade(card.psa_grade)
        if grade is None:
            return False
        if filters.grade_min is not None and grade < filters.grade_min:
            return False
        if filters.grade_max is not None and grade > filters.grade_max:
            return False

    return True


def grade_expression(column) -> ColumnElement:
    """
    SQL expression for the numeric grade of a grade label column.

    Evaluates to NULL when the stripped label is not a number, so the cast
    never fails and NULL comparisons exclude the row.
    """
    stripped = func.regexp_replace(
        column, GRADE_STRIP_PATTERN, "", "g", type_=String
    )
    return case(
        (stripped.regexp_match(GRADE_NUMBER_PATTERN), cast(stripped, Float)),
        else_=None,
    )


def build_predicate(filters: CardFilters, table) -> ColumnElement:
    """
    Build a SQLAlchemy WHERE clause for the card table.

    Args:
        filters: Metadata constraints
        table: Mapped card class or table exposing player, year, brand and
            psa_grade columns

    Returns:
        Boolean clause; TRUE when no filter is set
    """
    if filters.is_empty():
        return true()

    conditions = []
    if filters.player:
        conditions.append(table.player.icontains(filters.player, autoescape=True))
    if filters.year:
        conditions.append(table.year == filters.year)
    if filters.brand:
        conditions.append(table.brand.icontains(filters.brand, autoescape=True))

    if filters.has_grade_bound:
        grade = grade_expression(table.psa_grade)
        if filters.grade_min is not None:
            conditions.append(grade >= filters.grade_min)
        if filters.grade_max is not None:
            conditions.append(grade <= filters.grade_max)

    return and_(*conditions)

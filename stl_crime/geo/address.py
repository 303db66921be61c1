"""
STL Crime - Address Query Construction

SLMPD splits addresses into a house-number fragment (ILEADSAddress) and a
street fragment (ILEADSStreet). Intersections are written with "/" or "@"
and block-level records carry a placeholder house number of "0".
"""

from __future__ import annotations

import re

import pandas as pd

PLACEHOLDER_HOUSE_NUMBER = "0"
INTERSECTION_MARKERS = re.compile(r"\s*[/@]\s*")
WHITESPACE = re.compile(r"\s+")


def build_address_query(house: str | None, street: str | None) -> str | None:
    """
    Build one geocoder query from address fragments.

    Examples:
        >>> build_address_query("0", "MAIN ST")
        'MAIN ST'
        >>> build_address_query("123", "MAIN ST / OAK AVE")
        '123 MAIN ST at OAK AVE'
    """
    house = "" if _is_missing(house) else str(house).strip()
    street = "" if _is_missing(street) else str(street).strip()

    tokens = f"{house} {street}".split()
    if tokens and tokens[0] == PLACEHOLDER_HOUSE_NUMBER:
        tokens = tokens[1:]

    query = INTERSECTION_MARKERS.sub(" at ", " ".join(tokens))
    query = WHITESPACE.sub(" ", query).strip()
    return query or None


def build_address_queries(house: pd.Series, street: pd.Series) -> pd.Series:
    """Vectorized build_address_query over aligned fragment columns."""
    queries = [build_address_query(h, s) for h, s in zip(house, street, strict=True)]
    return pd.Series(queries, index=house.index, dtype="object", name="address_query")


def _is_missing(value: object) -> bool:
    return value is None or bool(pd.isna(value))

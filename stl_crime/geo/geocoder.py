"""
STL Crime - Composite Geocoder

Batch geocoding contract plus a composite locator that tries full-address,
short-address and placename matchers in order, accepting only matches whose
score clears a fixed threshold.

The pipeline treats the geocoder as a black box: it hands over one batch of
address strings per year and gets back, per address, a coordinate pair (or
null), the score, the matched address and the matcher tier.

Each tier queries a geopy geocoding service. The default service is ArcGIS,
whose candidates carry a 0-100 match score.

Usage:
    geocoder = ProviderGeocoder.from_config(config)
    results = geocoder.geocode(pd.Series(["123 MAIN ST", "CITY HALL"]))
    # columns: x, y, score, source, matched_address
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

import numpy as np
import pandas as pd
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import get_geocoder_for_service
from geopy.location import Location

from stl_crime.shared.config import Settings, get_config

logger = logging.getLogger(__name__)

GEOCODE_COLUMNS = ["x", "y", "score", "source", "matched_address"]

STREET_TYPES = {
    "ST", "AVE", "AV", "BLVD", "DR", "RD", "PL", "CT", "LN", "PKWY", "TER", "WAY",
    "HWY", "PLZ", "CIR", "SQ", "ALY", "EXPY", "STREET", "AVENUE", "BOULEVARD",
    "DRIVE", "ROAD", "PLACE", "COURT", "LANE", "PARKWAY", "TERRACE",
}  # fmt: skip
DIRECTIONALS = {"N", "S", "E", "W", "NORTH", "SOUTH", "EAST", "WEST"}

_NON_ALNUM = re.compile(r"[^A-Z0-9 ]+")
_SPACES = re.compile(r"\s+")
_HOUSE_NUMBER = re.compile(r"^\d+[A-Z]?\s+")


def normalize_full(address: str) -> str:
    """Upper-case, strip punctuation, collapse whitespace."""
    address = _NON_ALNUM.sub(" ", str(address).upper())
    return _SPACES.sub(" ", address).strip()


def normalize_short(address: str) -> str:
    """Full normalization without street types and directionals."""
    tokens = normalize_full(address).split()
    return " ".join(t for t in tokens if t not in STREET_TYPES and t not in DIRECTIONALS)


def normalize_placename(address: str) -> str:
    """Full normalization without a leading house number."""
    return _HOUSE_NUMBER.sub("", normalize_full(address))


NORMALIZERS: dict[str, Callable[[str], str]] = {
    "full": normalize_full,
    "short": normalize_short,
    "placename": normalize_placename,
}


def empty_results(index: pd.Index) -> pd.DataFrame:
    """Result frame with every address unresolved."""
    return pd.DataFrame(
        {
            "x": pd.Series(np.nan, index=index, dtype="float64"),
            "y": pd.Series(np.nan, index=index, dtype="float64"),
            "score": pd.Series(np.nan, index=index, dtype="float64"),
            "source": pd.Series(None, index=index, dtype="object"),
            "matched_address": pd.Series(None, index=index, dtype="object"),
        }
    )


# =============================================================================
# Contracts
# =============================================================================


class BaseGeocoder(ABC):
    """Batch geocoding service contract."""

    crs: str = "EPSG:4326"

    @abstractmethod
    def geocode(self, addresses: pd.Series) -> pd.DataFrame:
        """
        Geocode a batch of address strings.

        Args:
            addresses: Address queries (nulls allowed)

        Returns:
            DataFrame indexed like addresses with GEOCODE_COLUMNS; x, y, score
            and source are null where no matcher cleared the threshold
        """
        pass


class BaseMatcher(ABC):
    """One tier of a composite geocoder."""

    name: str

    @abstractmethod
    def match(self, addresses: pd.Series) -> pd.DataFrame:
        """
        Find the best candidate for each address.

        Returns:
            DataFrame indexed like addresses with x, y, score, matched_address
            (null where there is no candidate at all)
        """
        pass


# =============================================================================
# Service Matching
# =============================================================================


class GeopyMatcher(BaseMatcher):
    """
    Matches addresses through a geopy geocode callable.

    The callable is usually a RateLimiter around a geolocator's geocode
    method. Each distinct query is sent once per batch. The score is read
    from the candidate's raw payload (score_field); candidates without one
    keep a null score and never clear the threshold. Service errors
    (geopy.exc.GeocoderServiceError) propagate.
    """

    def __init__(
        self,
        name: str,
        geocode: Callable[[str], Location | None],
        normalizer: Callable[[str], str],
        locality: str | None = None,
        score_field: str = "score",
    ):
        self.name = name
        self.geocode = geocode
        self.normalizer = normalizer
        self.locality = locality
        self.score_field = score_field

    def query(self, address: str) -> str | None:
        """Service query for one address, or None if nothing is left to send."""
        key = self.normalizer(address)
        if not key:
            return None
        return f"{key}, {self.locality}" if self.locality else key

    def lookup(self, query: str) -> tuple[float, float, float, str] | None:
        """Return (x, y, score, matched address) for one query, or None."""
        location = self.geocode(query)
        if location is None:
            return None

        raw = location.raw if isinstance(location.raw, dict) else {}
        score = raw.get(self.score_field)
        score = float(score) if score is not None else np.nan
        return location.longitude, location.latitude, score, location.address

    def match(self, addresses: pd.Series) -> pd.DataFrame:
        results = empty_results(addresses.index).drop(columns=["source"])
        cache: dict[str, tuple[float, float, float, str] | None] = {}

        for idx, address in addresses.items():
            if pd.isna(address):
                continue
            query = self.query(address)
            if query is None:
                continue
            if query not in cache:
                cache[query] = self.lookup(query)
            found = cache[query]
            if found is None:
                continue
            x, y, score, label = found
            results.loc[idx, ["x", "y", "score"]] = [x, y, score]
            results.loc[idx, "matched_address"] = label

        logger.debug(
            f"{self.name} matcher sent {len(cache)} queries",
            extra={"matcher": self.name, "queries": len(cache)},
        )
        return results


# =============================================================================
# Composite Geocoder
# =============================================================================


class CompositeGeocoder(BaseGeocoder):
    """Tries each matcher in order on the addresses still unresolved."""

    def __init__(
        self,
        matchers: Sequence[BaseMatcher],
        min_score: float = 90.0,
        crs: str = "EPSG:4326",
    ):
        if not matchers:
            raise ValueError("CompositeGeocoder requires at least one matcher")
        self.matchers = list(matchers)
        self.min_score = min_score
        self.crs = crs

    def geocode(self, addresses: pd.Series) -> pd.DataFrame:
        results = empty_results(addresses.index)
        pending = addresses.index[addresses.notna()]

        for matcher in self.matchers:
            if len(pending) == 0:
                break

            found = matcher.match(addresses.loc[pending])
            accepted = found.index[(found["score"] >= self.min_score).fillna(False)]

            results.loc[accepted, ["x", "y", "score", "matched_address"]] = found.loc[
                accepted, ["x", "y", "score", "matched_address"]
            ]
            results.loc[accepted, "source"] = matcher.name
            pending = pending.difference(accepted)

            logger.debug(
                f"{matcher.name} matcher resolved {len(accepted)} addresses",
                extra={"matcher": matcher.name, "resolved": len(accepted)},
            )

        resolved = int(results["x"].notna().sum())
        logger.info(
            f"Geocoded {resolved} of {len(addresses)} addresses (threshold {self.min_score})",
            extra={"resolved": resolved, "requested": len(addresses), "misses": len(pending)},
        )
        return results


class ProviderGeocoder(CompositeGeocoder):
    """Composite geocoder whose tiers all query one geopy service."""

    @classmethod
    def from_geocode(
        cls,
        geocode: Callable[[str], Location | None],
        matchers: Sequence[str] = ("full", "short", "placename"),
        min_score: float = 90.0,
        crs: str = "EPSG:4326",
        locality: str | None = None,
        score_field: str = "score",
    ) -> ProviderGeocoder:
        """
        Build the configured tiers around one geocode callable.

        Args:
            geocode: Callable mapping a query string to a geopy Location or None
            matchers: Matcher tiers in the order they are tried
        """
        built: list[BaseMatcher] = []
        for name in matchers:
            if name not in NORMALIZERS:
                raise ValueError(f"Unknown matcher: {name}")
            built.append(
                GeopyMatcher(
                    name,
                    geocode,
                    NORMALIZERS[name],
                    locality=locality,
                    score_field=score_field,
                )
            )
        return cls(built, min_score=min_score, crs=crs)

    @classmethod
    def from_config(cls, config: Settings | None = None) -> ProviderGeocoder:
        """Build a rate-limited geolocator for the configured service."""
        config = config or get_config()
        geocoding = config.geocoding

        geolocator_cls = get_geocoder_for_service(geocoding.provider)
        geolocator = geolocator_cls(user_agent=geocoding.user_agent, timeout=geocoding.timeout)
        geocode = RateLimiter(
            geolocator.geocode,
            min_delay_seconds=geocoding.min_delay_seconds,
            max_retries=geocoding.max_retries,
            swallow_exceptions=False,
        )
        logger.info(f"Geocoding with {geocoding.provider} (tiers: {', '.join(geocoding.matchers)})")

        return cls.from_geocode(
            geocode,
            matchers=geocoding.matchers,
            min_score=geocoding.min_score,
            crs=geocoding.crs,
            locality=geocoding.locality,
            score_field=geocoding.score_field,
        )

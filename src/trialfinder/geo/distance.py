"""Great-circle distance between an origin and trial sites.

Pure arithmetic; safe to call per trial per request without caching.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from trialfinder.schema import GeoPoint, Site

EARTH_RADIUS_MILES = 3958.761


def distance_miles(origin: GeoPoint, point: GeoPoint) -> float:
    """Haversine distance in miles."""
    phi1 = math.radians(origin.lat)
    phi2 = math.radians(point.lat)
    dphi = math.radians(point.lat - origin.lat)
    dlambda = math.radians(point.lon - origin.lon)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push a a hair past 1.0 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


def _coerce_point(lat: Any, lon: Any) -> GeoPoint | None:
    if lat is None or lon is None:
        return None
    try:
        return GeoPoint(lat=float(lat), lon=float(lon))
    except (TypeError, ValueError):
        return None


def coordinates_of(site: Site | Mapping[str, Any]) -> GeoPoint | None:
    """Extract a site's coordinates under either upstream naming.

    Accepts a Site, a {"geoPoint": {"lat", "lon"}} mapping, or a flat
    mapping with "lat"/"lon" or "latitude"/"longitude".
    """
    if isinstance(site, Site):
        return site.geo_point
    if not isinstance(site, Mapping):
        return None
    nested = site.get("geoPoint") or site.get("geo_point")
    if isinstance(nested, GeoPoint):
        return nested
    if isinstance(nested, Mapping):
        source: Mapping[str, Any] = nested
    else:
        source = site
    if "lat" in source or "lon" in source:
        return _coerce_point(source.get("lat"), source.get("lon"))
    return _coerce_point(source.get("latitude"), source.get("longitude"))


def nearest_site_miles(
    origin: GeoPoint, sites: Iterable[Site | Mapping[str, Any]]
) -> float | None:
    """Distance to the closest site with coordinates; None if no site has any."""
    best: float | None = None
    for site in sites:
        point = coordinates_of(site)
        if point is None:
            continue
        d = distance_miles(origin, point)
        if best is None or d < best:
            best = d
    return best

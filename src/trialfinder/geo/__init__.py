"""GEO module: ZIP -> origin point, origin -> nearest trial site."""

from trialfinder.geo.distance import EARTH_RADIUS_MILES, distance_miles, nearest_site_miles
from trialfinder.geo.geocode import ZipGeocoder

__all__ = [
    "EARTH_RADIUS_MILES",
    "ZipGeocoder",
    "distance_miles",
    "nearest_site_miles",
]

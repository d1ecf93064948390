"""Static ZIP code -> GeoPoint lookup.

By default ZIPs resolve against the national ZIP database shipped with the
`zipcodes` package. geocode.table_path swaps in a CSV of centroids
(columns: zip, lat, lon, ...) instead. Lookups are local, so there is no
retry or network failure mode.
"""

from __future__ import annotations

import csv
import functools
import re
from pathlib import Path

import structlog
import zipcodes

from trialfinder.schema import GeoPoint

logger = structlog.get_logger()

_ZIP_PATTERN = re.compile(r"^\d{5}$")


def is_valid_zip(zip_code: str | None) -> bool:
    return bool(zip_code) and bool(_ZIP_PATTERN.match(zip_code))


def _read_table(lines) -> dict[str, GeoPoint]:
    table: dict[str, GeoPoint] = {}
    for row in csv.DictReader(lines):
        zip_code = (row.get("zip") or "").strip().zfill(5)
        try:
            table[zip_code] = GeoPoint(lat=float(row["lat"]), lon=float(row["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("zip_table_bad_row", zip=zip_code)
    return table


@functools.cache
def _national_table() -> dict[str, GeoPoint]:
    table: dict[str, GeoPoint] = {}
    for record in zipcodes.list_all():
        try:
            table[record["zip_code"]] = GeoPoint(lat=float(record["lat"]), lon=float(record["long"]))
        except (KeyError, TypeError, ValueError):
            continue
    logger.debug("zip_table_loaded", source="zipcodes", entries=len(table))
    return table


class ZipGeocoder:
    """Resolve 5-digit US ZIP codes to centroid coordinates."""

    def __init__(self, table: dict[str, GeoPoint] | None = None):
        self._table = table if table is not None else _national_table()

    @classmethod
    def from_csv(cls, path: Path | str) -> ZipGeocoder:
        with open(path, newline="") as f:
            table = _read_table(f)
        logger.info("zip_table_loaded", path=str(path), entries=len(table))
        return cls(table)

    def __len__(self) -> int:
        return len(self._table)

    def resolve(self, zip_code: str | None) -> GeoPoint | None:
        """Return the ZIP's centroid, or None when malformed or unknown.

        Both cases mean "no origin" to the caller; neither is an error.
        """
        if zip_code is None:
            return None
        zip_code = zip_code.strip()
        if not is_valid_zip(zip_code):
            logger.warning("geocode_invalid_zip", zip=zip_code)
            return None
        point = self._table.get(zip_code)
        if point is None:
            logger.info("geocode_miss", zip=zip_code)
        return point

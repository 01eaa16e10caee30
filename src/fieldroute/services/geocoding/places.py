"""City/province normalization and location query derivation for customer records."""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

from ...config import settings
from ...models.domain import CustomerRecord, LocationQuery

# normalized name -> canonical display name
CANONICAL_PROVINCES: dict[str, str] = {
    "huelva": "Huelva",
    "cadiz": "Cádiz",
    "ceuta": "Ceuta",
}

_CITY_NOTE = re.compile(r"Ciudad:\s*([^\n|]+)", re.IGNORECASE)
_PROVINCE_NOTE = re.compile(r"Provincia:\s*([^\n|]+)", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def normalize_place_name(value: Optional[str]) -> str:
    """Lowercase, strip accents and collapse whitespace."""

    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return _WHITESPACE.sub(" ", stripped).strip().lower()


def canonical_province(value: Optional[str]) -> str:
    return CANONICAL_PROVINCES.get(normalize_place_name(value), "")


def is_province_name(value: Optional[str]) -> bool:
    return bool(canonical_province(value))


def _note_value(pattern: re.Pattern[str], notes: Optional[str]) -> str:
    if not notes:
        return ""
    match = pattern.search(notes)
    return match.group(1).strip() if match else ""


def record_city(record: CustomerRecord) -> str:
    """City used for geocoding and grouping.

    A ``Ciudad:`` note wins. A bare province name in the city column is only kept
    when the province column says the same thing (the capital city case).
    """

    from_notes = _note_value(_CITY_NOTE, record.notes)
    if from_notes:
        return from_notes
    city = (record.city or "").strip()
    if not city:
        return ""
    if is_province_name(city):
        province = (record.province or "").strip()
        return city if normalize_place_name(province) == normalize_place_name(city) else ""
    return city


def record_province(record: CustomerRecord) -> str:
    for candidate in (record.province, record.city, _note_value(_PROVINCE_NOTE, record.notes)):
        canonical = canonical_province(candidate)
        if canonical:
            return canonical
    return (record.province or "").strip()


def record_country(record: CustomerRecord) -> str:
    return (record.country or "").strip() or settings.default_country


def full_query(record: CustomerRecord) -> LocationQuery:
    return LocationQuery(
        address=(record.address or "").strip(),
        postal_code=(record.postal_code or "").strip(),
        city=record_city(record),
        province=record_province(record),
        country=record_country(record),
    )


def location_queries(record: CustomerRecord) -> list[tuple[str, LocationQuery]]:
    """Return the geocoding candidates for a record, most specific first.

    Tiers whose required fields are missing are left out and a candidate that
    formats identically to an earlier one is dropped.
    """

    full = full_query(record)
    candidates: list[tuple[str, LocationQuery]] = []
    if full.address:
        candidates.append(("street", full))
    if full.city or full.province:
        candidates.append(("city_province", LocationQuery(city=full.city, province=full.province, country=full.country)))
    if full.province:
        candidates.append(("province", LocationQuery(province=full.province, country=full.country)))
    if full.city:
        candidates.append(("city", LocationQuery(city=full.city, country=full.country)))

    seen: set[str] = set()
    unique: list[tuple[str, LocationQuery]] = []
    for tier, query in candidates:
        text = query.format()
        if not text or text in seen or text == full.country:
            continue
        seen.add(text)
        unique.append((tier, query))
    return unique


def group_label(record: CustomerRecord) -> str:
    """Coarse grouping key used when decluttering markers."""

    return normalize_place_name(record_city(record) or record.city)

"""Offline city/province centroids used as the last resolution tier."""

from __future__ import annotations

from typing import Optional

from ...models.domain import Coordinate
from .places import normalize_place_name

PROVINCE_CENTROIDS: dict[str, Coordinate] = {
    "huelva": Coordinate(37.2614, -6.9447),
    "cadiz": Coordinate(36.5297, -6.2925),
    "ceuta": Coordinate(35.8894, -5.3213),
}

# (normalized city, normalized province) -> centroid
CITY_CENTROIDS: dict[tuple[str, str], Coordinate] = {
    ("huelva", "huelva"): Coordinate(37.2614, -6.9447),
    ("lepe", "huelva"): Coordinate(37.2531, -7.2044),
    ("almonte", "huelva"): Coordinate(37.2631, -6.5147),
    ("moguer", "huelva"): Coordinate(37.2758, -6.8386),
    ("ayamonte", "huelva"): Coordinate(37.2097, -7.4031),
    ("isla cristina", "huelva"): Coordinate(37.1969, -7.3158),
    ("valverde del camino", "huelva"): Coordinate(37.5831, -6.7486),
    ("cartaya", "huelva"): Coordinate(37.2831, -7.1531),
    ("palos de la frontera", "huelva"): Coordinate(37.2264, -6.9031),
    ("bollullos par del condado", "huelva"): Coordinate(37.3431, -6.5431),
    ("punta umbria", "huelva"): Coordinate(37.1827, -6.9670),
    ("aljaraque", "huelva"): Coordinate(37.2697, -7.0231),
    ("gibraleon", "huelva"): Coordinate(37.3761, -6.9706),
    ("aracena", "huelva"): Coordinate(37.8931, -6.5617),
    ("cadiz", "cadiz"): Coordinate(36.5297, -6.2925),
    ("jerez de la frontera", "cadiz"): Coordinate(36.6864, -6.1364),
    ("jerez", "cadiz"): Coordinate(36.6864, -6.1364),
    ("algeciras", "cadiz"): Coordinate(36.1322, -5.4553),
    ("la linea de la concepcion", "cadiz"): Coordinate(36.1658, -5.3497),
    ("puerto real", "cadiz"): Coordinate(36.5331, -6.1831),
    ("san fernando", "cadiz"): Coordinate(36.4614, -6.1997),
    ("chiclana de la frontera", "cadiz"): Coordinate(36.4197, -6.1497),
    ("el puerto de santa maria", "cadiz"): Coordinate(36.5997, -6.2331),
    ("sanlucar de barrameda", "cadiz"): Coordinate(36.7781, -6.3531),
    ("rota", "cadiz"): Coordinate(36.6167, -6.3572),
    ("chipiona", "cadiz"): Coordinate(36.7369, -6.4364),
    ("conil de la frontera", "cadiz"): Coordinate(36.2769, -6.0886),
    ("barbate", "cadiz"): Coordinate(36.1925, -5.9214),
    ("tarifa", "cadiz"): Coordinate(36.0143, -5.6044),
    ("san roque", "cadiz"): Coordinate(36.2108, -5.3842),
    ("los barrios", "cadiz"): Coordinate(36.1844, -5.4917),
    ("arcos de la frontera", "cadiz"): Coordinate(36.7500, -5.8100),
    ("ceuta", "ceuta"): Coordinate(35.8894, -5.3213),
}


def lookup_centroid(city: Optional[str], province: Optional[str]) -> Optional[Coordinate]:
    """Return the best known centroid for a city/province pair.

    The city is matched together with its province first; when the province is
    unknown a city name that exists in exactly one province is accepted. The
    province centroid is the final answer.
    """

    city_key = normalize_place_name(city)
    province_key = normalize_place_name(province)

    if city_key:
        if province_key:
            hit = CITY_CENTROIDS.get((city_key, province_key))
            if hit:
                return hit
        else:
            matches = [coord for (name, _), coord in CITY_CENTROIDS.items() if name == city_key]
            if len(matches) == 1:
                return matches[0]

    if province_key:
        return PROVINCE_CENTROIDS.get(province_key)
    return None

"""
Hospital / county resolution from free text.

Resolution precedence for `HospitalResolver.resolve(text)`:
  1. An embedded HSE reference code (e.g. "MW26MOB2") fixes the county; it is
     authoritative and wins over any hospital named in the text.
  2. Full canonical name (exact, then contained), restricted to that county.
  3. Short name as a whole word ("Mater" never matches "Maternity").
  4. Alias table, longest alias first, whole-word.
  5. Ref-code county without an agreeing name -> primary hospital of the county
     (teaching hospital preferred).
  6. Otherwise None.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable
from functools import lru_cache

from .config import ConfigError
from .models import CanonicalHospital, HospitalGroup

LOG = logging.getLogger(__name__)

DEFAULT_HOSPITALS_PATH = os.path.join(os.path.dirname(__file__), "data", "hospitals.json")
DEFAULT_COUNTY = "Dublin"

REF_CODE_RE = re.compile(r"\b([A-Z]{2})\d{2}[A-Z]{1,3}\d{1,3}\b", re.IGNORECASE)

# Two-letter HSE recruitment prefixes -> county.
REF_PREFIX_COUNTY: dict[str, str] = {
    "MW": "Limerick",
    "LI": "Limerick",
    "DU": "Dublin",
    "DN": "Dublin",
    "DS": "Dublin",
    "MH": "Dublin",
    "CO": "Cork",
    "GA": "Galway",
    "KE": "Kerry",
    "WA": "Waterford",
    "SL": "Sligo",
    "LE": "Sligo",
    "NW": "Sligo",
    "DK": "Donegal",
    "CA": "Cavan",
    "MN": "Cavan",
    "LO": "Louth",
    "KI": "Kilkenny",
    "CL": "Clare",
    "MA": "Mayo",
    "OF": "Laois",
    "LG": "Westmeath",
    "TI": "Tipperary",
    "WX": "Wexford",
    "KD": "Kildare",
    "RO": "Roscommon",
}

COUNTIES: tuple[str, ...] = (
    "Dublin",
    "Cork",
    "Galway",
    "Limerick",
    "Waterford",
    "Kerry",
    "Sligo",
    "Donegal",
    "Mayo",
    "Meath",
    "Kilkenny",
    "Tipperary",
    "Wexford",
    "Westmeath",
    "Laois",
    "Offaly",
    "Kildare",
    "Louth",
    "Cavan",
    "Clare",
    "Roscommon",
    "Leitrim",
    "Longford",
    "Monaghan",
    "Carlow",
    "Wicklow",
)

HOSPITAL_ALIASES: dict[str, str] = {
    # Dublin
    "mmuh": "mater",
    "mater": "mater",
    "mater misericordiae": "mater",
    "beaumont": "beaumont",
    "connolly": "connolly",
    "blanchardstown": "connolly",
    "st james": "stjames",
    "st. james": "stjames",
    "st james's": "stjames",
    "st. james's": "stjames",
    "james hospital": "stjames",
    "svuh": "stvincents",
    "st vincent's": "stvincents",
    "st vincents": "stvincents",
    "st. vincent's": "stvincents",
    "st. vincents": "stvincents",
    "tuh": "tallaght",
    "tallaght": "tallaght",
    "adelaide": "tallaght",
    # Leinster
    "st lukes kilkenny": "stlukeskilkenny",
    "st. luke's kilkenny": "stlukeskilkenny",
    "st luke": "stlukeskilkenny",
    "wexford": "wexford",
    "naas": "naas",
    "portlaoise": "portlaoise",
    "mullingar": "mullingar",
    "midland regional mullingar": "mullingar",
    "midland regional portlaoise": "portlaoise",
    # South
    "uhw": "waterford",
    "waterford": "waterford",
    "university hospital waterford": "waterford",
    "cuh": "cuh",
    "cork university": "cuh",
    "mercy": "mercy",
    "mercy cork": "mercy",
    "bantry": "bantry",
    "uhk": "uhk",
    "kerry": "uhk",
    "tralee": "uhk",
    "clonmel": "tipperary",
    # West
    "uhg": "uhg",
    "galway": "uhg",
    "university hospital galway": "uhg",
    "uhl": "uhl",
    "limerick": "uhl",
    "university hospital limerick": "uhl",
    "ennis": "ennis",
    "nenagh": "nenagh",
    "mayo": "mayo",
    "muh": "mayo",
    "castlebar": "mayo",
    "portiuncula": "portiuncula",
    "ballinasloe": "portiuncula",
    "roscommon": "roscommon",
    # North West
    "suh": "sligo",
    "sligo": "sligo",
    "luh": "letterkenny",
    "letterkenny": "letterkenny",
    # North East
    "drogheda": "drogheda",
    "lourdes": "drogheda",
    "our lady of lourdes": "drogheda",
    "cavan": "cavan",
    # Paediatric / maternity sites map to the nearest adult hospital
    "chi": "stjames",
    "children's health ireland": "stjames",
    "crumlin": "stjames",
    "coombe": "stjames",
    "temple street": "mater",
    "rotunda": "mater",
    "holles street": "stvincents",
    "nmh": "stvincents",
    "national maternity": "stvincents",
}


def _norm(text: str | None) -> str:
    return (text or "").replace("’", "'").lower().strip()


def _word_re(phrase: str) -> re.Pattern[str]:
    # Aliases carry "." and "'" so \b alone is not enough on both ends.
    return re.compile(r"(?<![\w])" + re.escape(phrase) + r"(?![\w])")


def extract_ref_code(text: str | None) -> str | None:
    """Return the first HSE-style reference code in `text`, upper-cased."""
    m = REF_CODE_RE.search(text or "")
    return m.group(0).upper() if m else None


def county_from_ref_code(text: str | None) -> str | None:
    """County implied by the first reference code with a known prefix, else None."""
    for m in REF_CODE_RE.finditer(text or ""):
        county = REF_PREFIX_COUNTY.get(m.group(1).upper())
        if county:
            return county
    return None


class HospitalResolver:
    """Deterministic, best-effort mapping from free text to the reference set."""

    def __init__(self, hospitals: Iterable[CanonicalHospital]):
        self._hospitals: tuple[CanonicalHospital, ...] = tuple(hospitals)
        self._by_id: dict[str, CanonicalHospital] = {h.id: h for h in self._hospitals}
        self._short_res = [
            (h, _word_re(_norm(h.short_name))) for h in self._hospitals if (h.short_name or "").strip()
        ]
        self._alias_res = [
            (_word_re(alias), hid)
            for alias, hid in sorted(HOSPITAL_ALIASES.items(), key=lambda kv: len(kv[0]), reverse=True)
            if hid in self._by_id
        ]
        self._county_res = [(c, _word_re(c.lower())) for c in COUNTIES]

    @property
    def hospitals(self) -> tuple[CanonicalHospital, ...]:
        return self._hospitals

    def get(self, hospital_id: str) -> CanonicalHospital | None:
        return self._by_id.get(hospital_id)

    # ---- public API ---------------------------------------------------------

    def resolve(self, text: str | None) -> CanonicalHospital | None:
        if not text or not text.strip():
            return None
        ref_county = county_from_ref_code(text)
        hit = self._match_name(_norm(text), ref_county)
        if hit is not None:
            return hit
        if ref_county:
            return self.resolve_by_county(ref_county)
        return None

    def resolve_by_county(self, county: str | None) -> CanonicalHospital | None:
        wanted = _norm(county)
        if not wanted:
            return None
        in_county = [h for h in self._hospitals if h.county.lower() == wanted]
        for h in in_county:
            if h.is_teaching_hospital:
                return h
        return in_county[0] if in_county else None

    def infer_county(self, text: str | None) -> str:
        """Ref code, then resolved hospital, then a named county, then Dublin."""
        ref_county = county_from_ref_code(text)
        if ref_county:
            return ref_county
        hospital = self.resolve(text)
        if hospital is not None:
            return hospital.county
        lowered = _norm(text)
        for county, pattern in self._county_res:
            if pattern.search(lowered):
                return county
        return DEFAULT_COUNTY

    # ---- internals ----------------------------------------------------------

    def _match_name(self, lowered: str, county: str | None) -> CanonicalHospital | None:
        def ok(h: CanonicalHospital) -> bool:
            return county is None or h.county == county

        for h in self._hospitals:
            if ok(h) and lowered == h.name.lower():
                return h
        for h in self._hospitals:
            if ok(h) and h.name.lower() in lowered:
                return h
        for h, pattern in self._short_res:
            if ok(h) and pattern.search(lowered):
                return h
        for pattern, hid in self._alias_res:
            h = self._by_id[hid]
            if ok(h) and pattern.search(lowered):
                return h
        return None


# ---- reference data ---------------------------------------------------------


def parse_hospitals(data: object) -> list[CanonicalHospital]:
    """
    Accepts {"hospitals": [...]} or a bare list of objects with
    id, name, shortName, county, hospitalGroup, isTeachingHospital.
    """
    items = data.get("hospitals") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ConfigError("hospitals data must be a list (or {'hospitals': [...]}).")

    out: list[CanonicalHospital] = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ConfigError(f"hospitals[{i}] must be an object.")
        hid = str(item.get("id") or "").strip()
        name = str(item.get("name") or "").strip()
        county = str(item.get("county") or "").strip()
        if not hid or not name or not county:
            raise ConfigError(f"hospitals[{i}] requires 'id', 'name' and 'county'.")
        if hid in seen:
            raise ConfigError(f"Duplicate hospital id {hid!r}.")
        seen.add(hid)
        try:
            group = HospitalGroup(str(item.get("hospitalGroup") or item.get("hospital_group") or ""))
        except ValueError as e:
            raise ConfigError(f"hospitals[{i}] ({hid}): unknown hospital group.") from e
        out.append(
            CanonicalHospital(
                id=hid,
                name=name,
                short_name=str(item.get("shortName") or item.get("short_name") or "").strip(),
                county=county,
                hospital_group=group,
                is_teaching_hospital=bool(item.get("isTeachingHospital", item.get("is_teaching_hospital", False))),
            )
        )
    return out


@lru_cache(maxsize=8)
def load_hospitals(path: str | None = None) -> tuple[CanonicalHospital, ...]:
    """Load (once per path) and validate the hospital reference set."""
    path = path or DEFAULT_HOSPITALS_PATH
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"hospitals file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"hospitals file is invalid JSON: {path}") from e
    hospitals = tuple(parse_hospitals(data))
    LOG.debug("Loaded %d hospitals from %s", len(hospitals), path)
    return hospitals

"""
Keyword classifiers for posting titles.

All functions are total: any text (including None/empty) yields a value and
nothing here raises. Matching is case-insensitive over "<title> <description>".
"""

from __future__ import annotations

import re

from .models import Grade, HospitalTier, SchemeType, Specialty

# Order matters: specific phrases before the generic ones they contain.
_SPECIFIC_SPECIALTIES: tuple[tuple[str, Specialty], ...] = (
    ("emergency medicine", Specialty.EMERGENCY_MEDICINE),
    ("a&e", Specialty.EMERGENCY_MEDICINE),
    ("anaesthesia", Specialty.ANAESTHETICS),
    ("anaesthetic", Specialty.ANAESTHETICS),
    ("paediatric", Specialty.PAEDIATRICS),
    ("paediatrics", Specialty.PAEDIATRICS),
    ("obstetrics", Specialty.OBSTETRICS_GYNAECOLOGY),
    ("gynaecology", Specialty.OBSTETRICS_GYNAECOLOGY),
    ("psychiatry", Specialty.PSYCHIATRY),
    ("radiology", Specialty.RADIOLOGY),
    ("pathology", Specialty.PATHOLOGY),
    ("cardiology", Specialty.CARDIOLOGY),
    ("respiratory", Specialty.RESPIRATORY),
    ("gastroenterology", Specialty.GASTROENTEROLOGY),
    ("endocrinology", Specialty.ENDOCRINOLOGY),
    ("neurology", Specialty.NEUROLOGY),
    ("dermatology", Specialty.DERMATOLOGY),
    ("orthopaedic", Specialty.ORTHOPAEDICS),
    ("urology", Specialty.UROLOGY),
    ("otolaryngology", Specialty.ENT),
    ("ear nose", Specialty.ENT),
    ("oncology", Specialty.ONCOLOGY),
    ("ophthalmology", Specialty.OPHTHALMOLOGY),
)

# "ENT" is only trusted as a standalone token ("Department", "Patient" contain it).
_ENT_RE = re.compile(r"\bent\b")

_GENERIC_SPECIALTIES: tuple[tuple[str, Specialty], ...] = (
    ("general medicine", Specialty.GENERAL_MEDICINE),
    ("general surgery", Specialty.GENERAL_SURGERY),
    ("emergency", Specialty.EMERGENCY_MEDICINE),
    ("medicine", Specialty.GENERAL_MEDICINE),
    ("surgery", Specialty.GENERAL_SURGERY),
)

_SPR_RE = re.compile(r"specialist registrar|\bspr\b")
_REGISTRAR_RE = re.compile(r"registrar|\breg\s")
_SHO_RE = re.compile(r"\bsho\b|senior house officer")

_NCHD_EXCLUDE: tuple[str, ...] = (
    "consultant",
    "nurse",
    "nursing",
    "midwife",
    "admin",
    "clerical",
    "physiotherapist",
    "pharmacist",
    "radiographer",
    "dietitian",
    "healthcare assistant",
    "psychologist",
    "manager",
    "porter",
)
_NCHD_INCLUDE_RE = re.compile(
    r"\bsho\b|registrar|\bnchd|intern\b|doctor|medical officer|physician|\bspr\b|senior house officer"
    r"|medicine|surgery|paediatric|psychiatry|anaesth|emergency|obstetric|gynaecol"
)

# Historical competitiveness by canonical hospital name.
HOSPITAL_TIERS: dict[str, HospitalTier] = {
    "St. James's Hospital": HospitalTier.TOP_TIER,
    "Mater Misericordiae University Hospital": HospitalTier.TOP_TIER,
    "St. Vincent's University Hospital": HospitalTier.TOP_TIER,
    "Beaumont Hospital": HospitalTier.TOP_TIER,
    "Tallaght University Hospital": HospitalTier.TOP_TIER,
    "Cork University Hospital": HospitalTier.TOP_TIER,
    "University Hospital Galway": HospitalTier.TOP_TIER,
    "Connolly Hospital": HospitalTier.MID_TIER,
    "National Maternity Hospital": HospitalTier.MID_TIER,
    "Rotunda Hospital": HospitalTier.MID_TIER,
    "University Hospital Limerick": HospitalTier.MID_TIER,
    "University Hospital Waterford": HospitalTier.MID_TIER,
    "Mercy University Hospital": HospitalTier.MID_TIER,
    "University Hospital Kerry": HospitalTier.MID_TIER,
    "Sligo University Hospital": HospitalTier.MID_TIER,
    "Letterkenny University Hospital": HospitalTier.MID_TIER,
    "Mayo University Hospital": HospitalTier.MID_TIER,
    "Midland Regional Hospital Mullingar": HospitalTier.MID_TIER,
    "Naas General Hospital": HospitalTier.MID_TIER,
    "Wexford General Hospital": HospitalTier.MID_TIER,
    "Cavan General Hospital": HospitalTier.SAFETY_NET,
    "Our Lady of Lourdes Hospital": HospitalTier.SAFETY_NET,
    "St. Luke's General Hospital Kilkenny": HospitalTier.SAFETY_NET,
    "South Tipperary General Hospital": HospitalTier.SAFETY_NET,
    "Portiuncula Hospital": HospitalTier.SAFETY_NET,
    "Roscommon University Hospital": HospitalTier.SAFETY_NET,
    "Nenagh Hospital": HospitalTier.SAFETY_NET,
    "Ennis Hospital": HospitalTier.SAFETY_NET,
    "Bantry General Hospital": HospitalTier.SAFETY_NET,
}


def _text(title: str | None, description: str | None) -> str:
    return f"{title or ''} {description or ''}".lower()


def classify_grade(title: str | None, description: str | None = None) -> Grade:
    text = _text(title, description)
    if _SPR_RE.search(text):
        return Grade.SPECIALIST_REGISTRAR
    if _REGISTRAR_RE.search(text):
        return Grade.REGISTRAR
    if _SHO_RE.search(text):
        return Grade.SHO
    return Grade.SHO


def classify_specialty(title: str | None, description: str | None = None) -> Specialty:
    """
    First match wins over an ordered keyword list.

    "Respiratory Medicine" is RESPIRATORY (not GENERAL_MEDICINE) and
    "SHO Emergency Department" is EMERGENCY_MEDICINE via the generic
    "emergency" fallback.
    """
    text = _text(title, description)
    for keyword, specialty in _SPECIFIC_SPECIALTIES:
        if keyword in text:
            return specialty
    if _ENT_RE.search(text):
        return Specialty.ENT
    for keyword, specialty in _GENERIC_SPECIALTIES:
        if keyword in text:
            return specialty
    return Specialty.GENERAL_MEDICINE


def classify_scheme_type(title: str | None, description: str | None = None) -> SchemeType:
    text = _text(title, description)
    if re.search(r"\bbst\b", text) or "basic specialist training" in text:
        return SchemeType.TRAINING_BST
    if re.search(r"\bhst\b", text) or "higher specialist training" in text:
        return SchemeType.TRAINING_HST
    if "training" in text:
        return SchemeType.TRAINING_BST
    if "stand alone" in text or "standalone" in text:
        return SchemeType.STAND_ALONE
    return SchemeType.NON_TRAINING_SERVICE


def is_nchd_job(title: str | None) -> bool:
    """Exclusions win over inclusions; a title matching neither is rejected."""
    text = (title or "").lower()
    if not text.strip():
        return False
    if any(word in text for word in _NCHD_EXCLUDE):
        return False
    return bool(_NCHD_INCLUDE_RE.search(text))


def hospital_tier(hospital_name: str | None) -> HospitalTier | None:
    if not hospital_name:
        return None
    return HOSPITAL_TIERS.get(hospital_name)

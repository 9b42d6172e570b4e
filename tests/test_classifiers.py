# tests/test_classifiers.py
import pytest

from modules.nchd_jobs.lib import classifiers
from modules.nchd_jobs.lib.models import Grade, HospitalTier, SchemeType, Specialty


# ----------------------------
# Grade
# ----------------------------
@pytest.mark.parametrize(
    "title, expected",
    [
        ("Specialist Registrar in Cardiology", Grade.SPECIALIST_REGISTRAR),
        ("SpR Geriatric Medicine", Grade.SPECIALIST_REGISTRAR),
        ("Registrar in Emergency Medicine", Grade.REGISTRAR),
        ("Senior House Officer - Paediatrics", Grade.SHO),
        ("SHO General Medicine", Grade.SHO),
        ("NCHD Psychiatry", Grade.SHO),
        ("", Grade.SHO),
        (None, Grade.SHO),
    ],
)
def test_classify_grade(title, expected):
    assert classifiers.classify_grade(title) == expected


def test_grade_spr_token_needs_word_boundary():
    # "spring" contains "spr" but is not a grade token.
    assert classifiers.classify_grade("Spring intake doctor") == Grade.SHO


# ----------------------------
# Specialty
# ----------------------------
@pytest.mark.parametrize(
    "title, expected",
    [
        ("Registrar Respiratory Medicine", Specialty.RESPIRATORY),
        ("SHO Emergency Department", Specialty.EMERGENCY_MEDICINE),
        ("SHO in Emergency Medicine", Specialty.EMERGENCY_MEDICINE),
        ("Registrar Anaesthesia", Specialty.ANAESTHETICS),
        ("SHO Obstetrics and Gynaecology", Specialty.OBSTETRICS_GYNAECOLOGY),
        ("Registrar ENT", Specialty.ENT),
        ("SHO General Surgery", Specialty.GENERAL_SURGERY),
        ("SHO Trauma and Orthopaedic Surgery", Specialty.ORTHOPAEDICS),
        ("NCHD", Specialty.GENERAL_MEDICINE),
    ],
)
def test_classify_specialty(title, expected):
    assert classifiers.classify_specialty(title) == expected


def test_ent_not_matched_inside_words():
    assert classifiers.classify_specialty("SHO Department of Medicine") == Specialty.GENERAL_MEDICINE
    assert classifiers.classify_specialty("Patient flow doctor") == Specialty.GENERAL_MEDICINE


# ----------------------------
# Scheme type
# ----------------------------
@pytest.mark.parametrize(
    "title, description, expected",
    [
        ("SHO BST Medicine", "", SchemeType.TRAINING_BST),
        ("Registrar", "Higher Specialist Training post", SchemeType.TRAINING_HST),
        ("SpR HST Cardiology", "", SchemeType.TRAINING_HST),
        ("Registrar Training Post", "", SchemeType.TRAINING_BST),
        ("Stand Alone Registrar", "", SchemeType.STAND_ALONE),
        ("SHO Psychiatry", "", SchemeType.NON_TRAINING_SERVICE),
    ],
)
def test_classify_scheme_type(title, description, expected):
    assert classifiers.classify_scheme_type(title, description) == expected


def test_training_flag_on_scheme_type():
    assert SchemeType.TRAINING_BST.is_training
    assert SchemeType.TRAINING_HST.is_training
    assert not SchemeType.STAND_ALONE.is_training
    assert not SchemeType.NON_TRAINING_SERVICE.is_training


# ----------------------------
# NCHD gate
# ----------------------------
@pytest.mark.parametrize(
    "title",
    [
        "SHO General Medicine",
        "Registrar in Psychiatry",
        "NCHD Anaesthetics",
        "Senior House Officer",
        "Medical Officer",
        "Intern",
    ],
)
def test_is_nchd_job_accepts_doctor_roles(title):
    assert classifiers.is_nchd_job(title)


@pytest.mark.parametrize(
    "title",
    [
        "Consultant Physician",
        "Clinical Nurse Manager",
        "Registered General Nurse - Emergency Department",
        "Senior Pharmacist",
        "Clerical Officer Grade III",
        "Healthcare Assistant",
        "Plumber",
        "",
        None,
    ],
)
def test_is_nchd_job_rejects_other_roles(title):
    assert not classifiers.is_nchd_job(title)


# ----------------------------
# Historical tier
# ----------------------------
def test_hospital_tier_lookup():
    assert classifiers.hospital_tier("St. James's Hospital") == HospitalTier.TOP_TIER
    assert classifiers.hospital_tier("University Hospital Limerick") == HospitalTier.MID_TIER
    assert classifiers.hospital_tier("Cavan General Hospital") == HospitalTier.SAFETY_NET
    assert classifiers.hospital_tier("HSE Facility") is None
    assert classifiers.hospital_tier(None) is None

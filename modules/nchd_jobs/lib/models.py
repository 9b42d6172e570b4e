from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Grade(str, Enum):
    SHO = "SHO"
    REGISTRAR = "REGISTRAR"
    SPECIALIST_REGISTRAR = "SPECIALIST_REGISTRAR"


class Specialty(str, Enum):
    GENERAL_MEDICINE = "GENERAL_MEDICINE"
    GENERAL_SURGERY = "GENERAL_SURGERY"
    EMERGENCY_MEDICINE = "EMERGENCY_MEDICINE"
    ANAESTHETICS = "ANAESTHETICS"
    PAEDIATRICS = "PAEDIATRICS"
    OBSTETRICS_GYNAECOLOGY = "OBSTETRICS_GYNAECOLOGY"
    PSYCHIATRY = "PSYCHIATRY"
    RADIOLOGY = "RADIOLOGY"
    PATHOLOGY = "PATHOLOGY"
    ORTHOPAEDICS = "ORTHOPAEDICS"
    CARDIOLOGY = "CARDIOLOGY"
    RESPIRATORY = "RESPIRATORY"
    GASTROENTEROLOGY = "GASTROENTEROLOGY"
    ENDOCRINOLOGY = "ENDOCRINOLOGY"
    NEUROLOGY = "NEUROLOGY"
    DERMATOLOGY = "DERMATOLOGY"
    ONCOLOGY = "ONCOLOGY"
    UROLOGY = "UROLOGY"
    ENT = "ENT"
    OPHTHALMOLOGY = "OPHTHALMOLOGY"
    OTHER = "OTHER"


class SchemeType(str, Enum):
    TRAINING_BST = "TRAINING_BST"
    TRAINING_HST = "TRAINING_HST"
    NON_TRAINING_SERVICE = "NON_TRAINING_SERVICE"
    STAND_ALONE = "STAND_ALONE"

    @property
    def is_training(self) -> bool:
        return self in (SchemeType.TRAINING_BST, SchemeType.TRAINING_HST)


class HospitalGroup(str, Enum):
    IEHG = "IEHG"
    DMHG = "DMHG"
    RCSI = "RCSI"
    SAOLTA = "SAOLTA"
    SSWHG = "SSWHG"
    MWHG = "MWHG"
    UL = "UL"


class HospitalTier(str, Enum):
    TOP_TIER = "TOP_TIER"
    MID_TIER = "MID_TIER"
    SAFETY_NET = "SAFETY_NET"


class SourcePlatform(str, Enum):
    HSE_NRS = "HSE_NRS"
    REZOOMO = "REZOOMO"
    ABOUT_HSE = "ABOUT_HSE"
    HEALTHCARE_JOBS = "HEALTHCARE_JOBS"
    GLOBAL_MEDICS = "GLOBAL_MEDICS"
    DOCTOR_JOBS = "DOCTOR_JOBS"
    IRISH_JOBS = "IRISH_JOBS"
    DIRECT_HOSPITAL = "DIRECT_HOSPITAL"
    STUB = "STUB"


@dataclass(frozen=True)
class CanonicalHospital:
    """
    One entry of the static hospital reference set.
    Loaded once per process and never mutated.
    """

    id: str
    name: str
    short_name: str
    county: str
    hospital_group: HospitalGroup
    is_teaching_hospital: bool = False


@dataclass(frozen=True)
class RawCandidate:
    """
    What a collector extracted for one listing, before classification/resolution.

    - raw_location_text: whatever location-ish text sat next to the title
    - hint_text: extra context that may help resolution (e.g. employer page name)
    - fallback_hospital: text resolved only when nothing else matched
    """

    title: str
    source_url: str
    source_platform: SourcePlatform
    raw_location_text: str = ""
    application_url: str | None = None
    deadline_text: str | None = None
    hint_text: str = ""
    fallback_hospital: str | None = None
    informal_enquiries_email: str | None = None
    informal_enquiries_name: str | None = None
    clinical_lead: str | None = None
    rotational_detail: str | None = None
    salary_range: str | None = None
    job_spec_pdf_url: str | None = None


@dataclass(frozen=True)
class NormalizedPosting:
    """
    A canonical posting. county and hospital_group are always populated and
    application_deadline is always an aware datetime.
    deadline_defaulted is True when no deadline was found and
    application_deadline is the scrape-time placeholder.
    """

    title: str
    grade: Grade
    specialty: Specialty
    scheme_type: SchemeType
    hospital_name: str
    hospital_group: HospitalGroup
    county: str
    application_deadline: datetime
    source_platform: SourcePlatform
    source_url: str
    scraped_at: datetime
    hospital_id: str | None = None
    application_url: str | None = None
    historical_tier: HospitalTier | None = None
    informal_enquiries_email: str | None = None
    informal_enquiries_name: str | None = None
    clinical_lead: str | None = None
    rotational_detail: str | None = None
    salary_range: str | None = None
    job_spec_pdf_url: str | None = None
    deadline_defaulted: bool = False


@dataclass
class RunResult:
    """
    Outcome of one collector invocation.
    Postings gathered before a failure are kept even when success is False.
    """

    collector: str
    postings: list[NormalizedPosting] = field(default_factory=list)
    success: bool = True
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.postings)


@dataclass(frozen=True)
class RunLogEntry:
    """One scraping_logs row: how a single collector fared in a run."""

    source: str
    status: str  # SUCCESS | PARTIAL | FAILURE
    jobs_found: int
    jobs_new: int
    jobs_updated: int
    error_message: str | None
    started_at: datetime
    completed_at: datetime
    duration_seconds: float


@dataclass
class OrchestrationSummary:
    total_scraped: int = 0
    total_saved: int = 0
    duplicates_removed: int = 0
    collectors_run: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float = 0.0
    total_new: int = 0
    total_updated: int = 0
    total_deactivated: int = 0
    persisted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_scraped": self.total_scraped,
            "total_saved": self.total_saved,
            "duplicates_removed": self.duplicates_removed,
            "collectors_run": list(self.collectors_run),
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "total_new": self.total_new,
            "total_updated": self.total_updated,
            "total_deactivated": self.total_deactivated,
            "persisted": self.persisted,
        }

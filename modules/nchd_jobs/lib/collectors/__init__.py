# modules/nchd_jobs/lib/collectors/__init__.py
from __future__ import annotations

from collections.abc import Iterable

from .base import BrowserCollector, CandidateBuffer, Collector, CollectorError, HttpCollector, ListingPage
from .doctorjobs import DoctorJobsCollector
from .healthcarejobs import HealthcareJobsCollector
from .hse import HseCollector
from .irishjobs import IrishJobsCollector
from .rezoomo import RezoomoCollector
from .stub import StubCollector

# Run order. HTTP sources first, then browser sources, then the offline stub.
COLLECTOR_CLASSES: tuple[type[Collector], ...] = (
    HseCollector,
    HealthcareJobsCollector,
    RezoomoCollector,
    IrishJobsCollector,
    DoctorJobsCollector,
    StubCollector,
)


def catalogue(classes: Iterable[type[Collector]] = COLLECTOR_CLASSES) -> dict[str, type[Collector]]:
    """
    Name -> collector class, keeping the order of `classes`.
    Raises ValueError for a class without a name or a name used twice.
    """
    out: dict[str, type[Collector]] = {}
    for cls in classes:
        name = getattr(cls, "name", "") or ""
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Collector class {cls!r} has no name")
        key = name.strip().lower()
        if key in out and out[key] is not cls:
            raise ValueError(f"Collector name {key!r} is used by both {out[key]!r} and {cls!r}")
        out[key] = cls
    return out


__all__ = [
    "BrowserCollector",
    "CandidateBuffer",
    "COLLECTOR_CLASSES",
    "Collector",
    "CollectorError",
    "HttpCollector",
    "ListingPage",
    "catalogue",
]

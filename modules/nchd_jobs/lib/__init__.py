# modules/nchd_jobs/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, Settings
from .hospitals import HospitalResolver, load_hospitals
from .models import NormalizedPosting, OrchestrationSummary, RawCandidate, RunResult
from .normalize import Normalizer
from .orchestrator import CollectorNotFound, CollectorTimeout, Orchestrator, OrchestratorBuilder
from .store import JobStore, SqliteJobStore, StoreError

__all__ = [
    "CollectorNotFound",
    "CollectorTimeout",
    "ConfigError",
    "HospitalResolver",
    "JobStore",
    "NormalizedPosting",
    "Normalizer",
    "OrchestrationSummary",
    "Orchestrator",
    "OrchestratorBuilder",
    "RawCandidate",
    "RunResult",
    "Settings",
    "SqliteJobStore",
    "StoreError",
    "load_hospitals",
]

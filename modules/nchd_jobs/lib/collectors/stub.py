from __future__ import annotations

from typing import Any

from ..config import Settings
from ..models import RawCandidate, RunResult, SourcePlatform
from ..normalize import Normalizer
from .base import CandidateBuffer, Collector, CollectorError


class StubCollector(Collector):
    """
    A zero-network collector used for tests and dry-runs.

    params:
      - items: list[{title, url?, location?, deadline?, platform?}]
      - fail_after: int  # raise after emitting this many items (partial result)

    Only runs when selected by name or when the run has skip_network=True.
    """

    name = "stub"
    platform = SourcePlatform.STUB
    default_enabled = False

    def __init__(self, normalizer: Normalizer, *, params: dict[str, Any] | None = None):
        self.normalizer = normalizer
        self.params = dict(params or {})

    @classmethod
    def from_settings(cls, settings: Settings, normalizer: Normalizer) -> StubCollector:
        return cls(normalizer, params=settings.params_for(cls.name))

    def run(self) -> RunResult:
        buffer = CandidateBuffer(self.normalizer)
        raw_items = self.params.get("items") or []
        if not isinstance(raw_items, list):
            raw_items = []
        fail_after = self.params.get("fail_after")

        try:
            for idx, item in enumerate(raw_items):
                if fail_after is not None and idx >= int(fail_after):
                    raise CollectorError(f"stub failure after {idx} item(s)")
                if not isinstance(item, dict):
                    continue
                url = str(item.get("url") or f"stub://item/{idx}")
                buffer.emit(
                    RawCandidate(
                        title=str(item.get("title") or ""),
                        source_url=url,
                        source_platform=SourcePlatform(item.get("platform") or self.platform.value),
                        raw_location_text=str(item.get("location") or ""),
                        application_url=url,
                        deadline_text=item.get("deadline"),
                    )
                )
        except (CollectorError, ValueError) as e:
            return self._failed(buffer, e)
        return RunResult(collector=self.name, postings=buffer.postings)

from __future__ import annotations

import logging

from ..http_client import HttpClient
from ..models import SourcePlatform
from .base import Emit, HttpCollector
from .listing import candidate_from_card, parse_listing

LOG = logging.getLogger(__name__)


class HealthcareJobsCollector(HttpCollector):
    """
    healthcarejobs.ie medical listings (server-rendered).
    Pages until one comes back empty or max_pages is reached.
    """

    name = "healthcarejobs"
    platform = SourcePlatform.HEALTHCARE_JOBS
    BASE_URL = "https://www.healthcarejobs.ie"
    SEARCH_URL = "https://www.healthcarejobs.ie/jobs/medical/"

    def collect(self, client: HttpClient, emit: Emit) -> None:
        for page in range(1, self.max_pages + 1):
            if page > 1:
                self.pause()
            url = self.SEARCH_URL if page == 1 else f"{self.SEARCH_URL}?page={page}"
            cards = parse_listing(client.get_text(url), self.BASE_URL)
            LOG.debug("HealthcareJobs page %d: %d card(s)", page, len(cards))
            if not cards:
                break
            for card in cards:
                emit(candidate_from_card(card, platform=self.platform, listing_url=url))

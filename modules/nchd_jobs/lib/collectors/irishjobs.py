from __future__ import annotations

from ..browser import BrowserSession
from ..models import SourcePlatform
from .base import BrowserCollector, Emit, ListingPage

SEARCH_PAGES: tuple[ListingPage, ...] = (
    ListingPage("nchd", "https://www.irishjobs.ie/jobs/nchd/"),
    ListingPage("senior-house-officer", "https://www.irishjobs.ie/jobs/senior-house-officer/"),
    ListingPage("registrar-medical", "https://www.irishjobs.ie/jobs/registrar-medical/"),
    ListingPage(
        "keyword-search",
        "https://www.irishjobs.ie/ShowResults.aspx?Keywords=NCHD&Location=0&Category=49"
        "&autosuggestEndpoint=%2fautosuggest&btnSubmit=Search",
    ),
)


class IrishJobsCollector(BrowserCollector):
    """IrishJobs.ie search result pages; the same job shows up under several searches."""

    name = "irishjobs"
    platform = SourcePlatform.IRISH_JOBS
    WAIT_FOR = ".job-result, [class*='job-card'], [data-job-id], article"

    def collect(self, session: BrowserSession, emit: Emit) -> None:
        self.collect_pages(session, emit, SEARCH_PAGES, wait_for=self.WAIT_FOR)

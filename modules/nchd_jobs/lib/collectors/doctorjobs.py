from __future__ import annotations

from ..browser import BrowserSession
from ..models import SourcePlatform
from .base import BrowserCollector, Emit, ListingPage

SEARCH_PAGES: tuple[ListingPage, ...] = (
    ListingPage("nchd-doctors", "https://www.doctorjobs.ie/jobs/nchd-doctors/"),
    ListingPage("disciplines", "https://www.doctorjobs.ie/disciplines/nchd-doctors"),
    ListingPage("all", "https://www.doctorjobs.ie/jobs/"),
)


class DoctorJobsCollector(BrowserCollector):
    name = "doctorjobs"
    platform = SourcePlatform.DOCTOR_JOBS
    WAIT_FOR = ".job-listing, .vacancy, [class*='job']"
    LOAD_MORE = "button[class*='load-more'], a[class*='load-more'], .pagination a:last-child"

    def collect(self, session: BrowserSession, emit: Emit) -> None:
        self.collect_pages(session, emit, SEARCH_PAGES, wait_for=self.WAIT_FOR, load_more=self.LOAD_MORE)

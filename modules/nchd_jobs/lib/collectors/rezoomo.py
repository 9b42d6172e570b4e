from __future__ import annotations

from ..browser import BrowserSession
from ..models import SourcePlatform
from .base import BrowserCollector, Emit, ListingPage

EMPLOYER_PAGES: tuple[ListingPage, ...] = (
    ListingPage("CHI", "https://www.rezoomo.com/company/childrens-health-ireland/jobs/", "Children's Health Ireland"),
    ListingPage("Mater Hospital", "https://www.rezoomo.com/company/mater-hospital/jobs/", "Mater"),
    ListingPage("HSE South", "https://www.rezoomo.com/company/hse-south/jobs/", "Cork University Hospital"),
    ListingPage("HSE Mid West", "https://www.rezoomo.com/company/hse-mid-west/jobs/", "University Hospital Limerick"),
    ListingPage(
        "HSE Dublin North East",
        "https://www.rezoomo.com/company/hse-community-healthcare-dublin-north-city-and-county/jobs/",
        "Beaumont",
    ),
    ListingPage("HSE West", "https://www.rezoomo.com/company/community-healthcare-west/jobs/", "University Hospital Galway"),
    ListingPage(
        "National Maternity Hospital",
        "https://www.rezoomo.com/company/the-national-maternity-hospital/jobs/",
        "National Maternity",
    ),
    ListingPage("Ireland East", "https://www.rezoomo.com/company/ireland-east-hospital-group/jobs/", "St. Vincent's"),
)


class RezoomoCollector(BrowserCollector):
    """Rezoomo employer pages; each employer maps to a known fallback hospital."""

    name = "rezoomo"
    platform = SourcePlatform.REZOOMO
    WAIT_FOR = ".job-listing, .vacancy, [class*='job']"
    LOAD_MORE = "button[class*='load-more'], a[class*='load-more'], [class*='show-more'] button"

    def collect(self, session: BrowserSession, emit: Emit) -> None:
        self.collect_pages(session, emit, EMPLOYER_PAGES, wait_for=self.WAIT_FOR, load_more=self.LOAD_MORE)

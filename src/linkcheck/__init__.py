"""
Link and fragment checker for generated static sites.
Serves the built site locally, crawls it and reports broken links and anchors.
"""
from linkcheck.director import CrawlReport, check_site, crawl
from linkcheck.errors import LinkCheckError, MissingDomainConfiguration, ServerStartupFailure
from linkcheck.page import Page, PageFetcher, PageStatus, parse_page
from linkcheck.server import ServerDirector, with_server
from linkcheck.sieve import LinkRecord, LinkSieve

__version__ = "1.0.0"
__all__ = [
    "CrawlReport",
    "LinkCheckError",
    "LinkRecord",
    "LinkSieve",
    "MissingDomainConfiguration",
    "Page",
    "PageFetcher",
    "PageStatus",
    "ServerDirector",
    "ServerStartupFailure",
    "check_site",
    "crawl",
    "parse_page",
    "with_server",
]

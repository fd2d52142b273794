"""
Fetched pages and the link and anchor extraction done on them.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional, Set, Tuple
from urllib.parse import urldefrag, urljoin, urlparse, urlsplit, urlunparse

import requests
from bs4 import BeautifulSoup

DEFAULT_USER_AGENT = "LinkCheck/1.0"


class PageStatus(Enum):
    """Whether a fetched resource loaded."""
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class Page:
    """
    One fetched resource.

    ``local_fragment_refs`` hold same-document references as ``"#name"``.
    ``remote_fragment_refs`` hold ``(path, fragment)`` pairs pointing at
    other documents on the same site.
    """
    url: str
    referer: Optional[str]
    status: PageStatus
    anchors: FrozenSet[str] = frozenset()
    local_links: Tuple[str, ...] = ()
    local_fragment_refs: Tuple[str, ...] = ()
    remote_fragment_refs: Tuple[Tuple[str, str], ...] = ()

    @property
    def not_found(self) -> bool:
        """True when the page could not be loaded."""
        return self.status is PageStatus.NOT_FOUND

    def has_target_for(self, fragment: str) -> bool:
        """Exact match of ``fragment`` (with or without its ``#``) against the page's anchors."""
        name = fragment[1:] if fragment.startswith("#") else fragment
        return name in self.anchors


def normalize_url(url: str, base: str) -> Optional[str]:
    """
    Normalize URL for deduplication and comparison.

    - Joins relative URLs against base
    - Drops fragments (#...)
    - Normalizes scheme/host case
    - Removes default ports (:80, :443)
    - Keeps querystrings (they matter for uniqueness)
    """
    if not url:
        return None

    joined, _ = urldefrag(urljoin(base, url))
    parsed = urlparse(joined)

    if parsed.scheme not in ("http", "https"):
        return None

    hostname = (parsed.hostname or "").lower()
    port = parsed.port

    if (parsed.scheme == "http" and port == 80) or (parsed.scheme == "https" and port == 443):
        netloc = hostname
    elif port:
        netloc = f"{hostname}:{port}"
    else:
        netloc = hostname

    return urlunparse((
        parsed.scheme.lower(),
        netloc,
        parsed.path or "/",
        parsed.params,
        parsed.query,
        ""
    ))


def origin_of(url: str) -> Tuple[str, str]:
    """Return the (scheme, netloc) pair of a URL."""
    parsed = urlparse(url)
    return parsed.scheme, parsed.netloc


def is_local(url: str, site_origin: Tuple[str, str]) -> bool:
    """Check if URL has same scheme and netloc as the site root."""
    return origin_of(url) == site_origin


def parse_page(
    url: str,
    html: str,
    referer: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Page:
    """
    Build a found Page from its HTML.

    Relative hrefs are resolved against ``base_url`` (the URL the body was
    actually served from, after redirects), defaulting to ``url``.
    """
    base = base_url or url
    site_origin = origin_of(normalize_url(base, base) or base)
    soup = BeautifulSoup(html, "lxml")

    anchors: Set[str] = {el["id"] for el in soup.find_all(id=True)}
    anchors.update(a["name"] for a in soup.find_all("a", attrs={"name": True}))

    local_links: List[str] = []
    local_fragments: List[str] = []
    remote_fragments: List[Tuple[str, str]] = []

    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href:
            continue

        parts = urlsplit(href)
        if not (parts.scheme or parts.netloc or parts.path or parts.query):
            if parts.fragment:
                local_fragments.append(f"#{parts.fragment}")
            continue

        _, fragment = urldefrag(urljoin(base, href))
        target = normalize_url(href, base)
        if not target or not is_local(target, site_origin):
            continue

        if fragment:
            remote_fragments.append((urlparse(target).path, fragment))
        else:
            local_links.append(target)

    return Page(
        url=url,
        referer=referer,
        status=PageStatus.FOUND,
        anchors=frozenset(anchors),
        local_links=tuple(local_links),
        local_fragment_refs=tuple(local_fragments),
        remote_fragment_refs=tuple(remote_fragments),
    )


class PageFetcher:
    """
    Fetches pages from the locally served site.

    Only 2xx responses count as found. Transport errors are reported on
    stderr and the page is treated as not found so the crawl can go on.
    """

    def __init__(
        self,
        port: int,
        timeout_s: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        host: str = "localhost",
        session: Optional[requests.Session] = None,
        verbose: bool = False,
    ) -> None:
        self.root = f"http://{host}:{port}/"
        self.timeout_s = timeout_s
        self.verbose = verbose
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent

    def fetch(self, url: str, referer: Optional[str] = None) -> Page:
        """GET one URL and turn the response into a Page."""
        try:
            resp = self.session.get(url, timeout=self.timeout_s, allow_redirects=True)
        except requests.RequestException as e:
            if self.verbose:
                sys.stderr.write(f"\n  ✗ ERROR {url}: {e}")
            return Page(url=url, referer=referer, status=PageStatus.NOT_FOUND)

        if not 200 <= resp.status_code < 300:
            return Page(url=url, referer=referer, status=PageStatus.NOT_FOUND)

        # Only parse HTML content
        content_type = (resp.headers.get("content-type") or "").lower()
        if "text/html" not in content_type:
            return Page(url=url, referer=referer, status=PageStatus.FOUND)

        return parse_page(url, resp.text, referer=referer, base_url=resp.url)

"""
Classification of a page's outbound references into broken and working.

Fragment references to other pages cannot be checked until the target has
been fetched, so they are parked in a pending index keyed by target URL
and checked when the target is classified again on the second pass.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from linkcheck.errors import MissingDomainConfiguration
from linkcheck.page import Page, normalize_url


def prepend_location(location: Optional[str], target: str) -> str:
    """Readable ``"<location> => <target>"`` form used in reports."""
    if not location:
        return target
    return f"{location} => {target}"


@dataclass(frozen=True, slots=True)
class LinkRecord:
    """A reference from ``referer`` to ``target``."""
    referer: Optional[str]
    target: str

    def __str__(self) -> str:
        return prepend_location(self.referer, self.target)


@dataclass(frozen=True, slots=True)
class LocalizedFragment:
    """A fragment reference remembered together with the page it came from."""
    referer: str
    fragment: str

    def __str__(self) -> str:
        return prepend_location(self.referer, self.fragment)


# target URL -> fragment references still waiting for that page
PendingFragmentIndex = Dict[str, List[LocalizedFragment]]


class LinkSieve:
    """
    Sorts the references of each page into broken and working links.

    Args:
        domain: Root URL of the site, e.g. ``http://localhost:41722``.
                Remote fragment paths are resolved against it.
        pending: Optional index to share between sieves. A fresh one is
                 created when omitted.
    """

    def __init__(self, domain: Optional[str] = None, pending: Optional[PendingFragmentIndex] = None) -> None:
        if not domain:
            raise MissingDomainConfiguration("You must supply a domain parameter.")
        self.domain = domain
        self.pending: PendingFragmentIndex = pending if pending is not None else {}
        self._lock = threading.Lock()

    def classify(self, page: Page, is_first_pass: bool) -> Tuple[List[LinkRecord], List[str]]:
        """Return ``(broken, working)`` for one page."""
        if page.not_found:
            if is_first_pass:
                return [LinkRecord(page.referer, page.url)], []
            # Already reported as missing; whatever still points into it is broken too
            return self._remote_fragments_missing_from(page), []

        working = [page.url]
        if is_first_pass:
            broken = self._local_fragments_missing_from(page)
        else:
            broken = self._remote_fragments_missing_from(page)

        self._merge_remote_fragments(page)
        return broken, working

    def unresolved(self, fetched_urls: Iterable[str]) -> List[LinkRecord]:
        """Pending fragment references whose target page was never fetched."""
        fetched = {self._key(url) for url in fetched_urls}
        with self._lock:
            return [
                LinkRecord(localized.referer, f"{target_url}{localized.fragment}")
                for target_url, bucket in self.pending.items()
                if target_url not in fetched
                for localized in bucket
            ]

    def target_url_for(self, path: str) -> str:
        """Absolute, normalized URL of a site path."""
        return self._key(urljoin(self.domain, path))

    def _local_fragments_missing_from(self, page: Page) -> List[LinkRecord]:
        """Same-page fragments with no anchor on the page."""
        return [
            LinkRecord(page.url, fragment)
            for fragment in page.local_fragment_refs
            if not page.has_target_for(fragment)
        ]

    def _remote_fragments_missing_from(self, page: Page) -> List[LinkRecord]:
        """Pending references into this page whose anchor is missing."""
        target_url = self._key(page.url)
        with self._lock:
            bucket = list(self.pending.get(target_url, ()))
        return [
            LinkRecord(localized.referer, f"{target_url}{localized.fragment}")
            for localized in bucket
            if not page.has_target_for(localized.fragment)
        ]

    def _merge_remote_fragments(self, page: Page) -> None:
        """Park the page's fragment references to other pages."""
        merged: PendingFragmentIndex = {}
        for path, fragment in page.remote_fragment_refs:
            localized = LocalizedFragment(page.url, f"#{fragment}")
            merged.setdefault(self.target_url_for(path), []).append(localized)

        # A page merged again replaces its own earlier entries
        with self._lock:
            for target_url, localized in merged.items():
                kept = [e for e in self.pending.get(target_url, ()) if e.referer != page.url]
                self.pending[target_url] = kept + localized

    @staticmethod
    def _key(url: str) -> str:
        """Index key for a URL."""
        return normalize_url(url, url) or url

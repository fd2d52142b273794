"""
Two-pass crawl of a locally served site.

Pass 1 fetches every reachable page once, in discovery order, and checks
same-page fragments. Pass 2 replays the fetched pages (no refetching) so
fragment references into pages that were fetched later can be checked.
"""
from __future__ import annotations

import sys
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional, Protocol, Sequence, Set, Tuple, Union

from linkcheck.page import DEFAULT_USER_AGENT, Page, PageFetcher, normalize_url
from linkcheck.server import DEFAULT_PORT, with_server
from linkcheck.sieve import LinkRecord, LinkSieve


class Fetcher(Protocol):
    """Anything that can turn a URL into a Page."""
    root: str

    def fetch(self, url: str, referer: Optional[str] = None) -> Page: ...


@dataclass(slots=True)
class CrawlReport:
    """Outcome of a crawl: every broken reference and every page that loaded."""
    broken: List[LinkRecord] = field(default_factory=list)
    working: List[str] = field(default_factory=list)
    pages_crawled: int = 0

    @property
    def ok(self) -> bool:
        """True when nothing is broken."""
        return not self.broken

    def to_dict(self) -> Dict[str, object]:
        """JSON-ready form of the report."""
        return {
            "broken": [{"referer": r.referer, "target": r.target} for r in self.broken],
            "working": list(self.working),
            "pages_crawled": self.pages_crawled,
        }


def print_progress(scanned: int, discovered: int, queue_size: int) -> None:
    """Print real-time progress to stderr."""
    progress = f"\r\033[K[pass 1] Visited: {scanned} | Discovered: {discovered} | Queue: {queue_size}"
    sys.stderr.write(progress)
    sys.stderr.flush()


def print_scan_line(page: Page, new_links: int, broken: int) -> None:
    """Print single scan result line."""
    status_str = "404" if page.not_found else "OK"
    sys.stderr.write(f"\n  → {status_str} {page.url} (+{new_links} links, {broken} broken)")
    sys.stderr.flush()


def crawl(
    fetcher: Fetcher,
    root_url: Optional[str] = None,
    sieve: Optional[LinkSieve] = None,
    max_pages: Optional[int] = None,
    verbose: bool = False,
) -> CrawlReport:
    """
    Crawl every page reachable from ``root_url`` and check its links.

    Args:
        fetcher: Anything with a ``fetch(url, referer)`` returning a Page.
        root_url: Where to start. Defaults to ``fetcher.root``.
        sieve: Classifier to use. Defaults to a LinkSieve rooted at ``root_url``.
        max_pages: Optional cap on the number of pages fetched.
        verbose: Whether to print progress information.

    Returns:
        The combined report of both passes.
    """
    root_url = root_url or fetcher.root
    start = normalize_url(root_url, root_url)
    if not start:
        raise ValueError(f"Invalid root URL: {root_url}")
    if sieve is None:
        sieve = LinkSieve(domain=start)

    report = CrawlReport()
    pages: List[Page] = []
    discovered: Set[str] = {start}
    queue: Deque[Tuple[str, Optional[str]]] = deque([(start, None)])

    if verbose:
        sys.stderr.write(f"Starting crawl from: {start}\n")

    while queue and (max_pages is None or len(pages) < max_pages):
        url, referer = queue.popleft()
        if verbose:
            print_progress(len(pages), len(discovered), len(queue))

        page = fetcher.fetch(url, referer)
        pages.append(page)

        broken, working = sieve.classify(page, is_first_pass=True)
        report.broken.extend(broken)
        report.working.extend(working)

        new_links = 0
        for target in _frontier_from(page, sieve):
            if target not in discovered:
                discovered.add(target)
                queue.append((target, page.url))
                new_links += 1

        if verbose:
            print_scan_line(page, new_links, len(broken))

    report.pages_crawled = len(pages)

    # Targets never fetched cannot be resolved by the second pass either
    unresolved = sieve.unresolved(page.url for page in pages)

    if verbose:
        sys.stderr.write(f"\n\n[pass 2] Rechecking fragments on {len(pages)} pages\n")

    for page in pages:
        broken, _ = sieve.classify(page, is_first_pass=False)
        report.broken.extend(broken)

    report.broken.extend(unresolved)
    return report


def _frontier_from(page: Page, sieve: LinkSieve) -> Iterator[str]:
    """URLs a page points at that should be fetched."""
    yield from page.local_links
    for path, _ in page.remote_fragment_refs:
        yield sieve.target_url_for(path)


def check_site(
    directory: Union[str, Path],
    port: int = DEFAULT_PORT,
    server_command: Optional[Sequence[str]] = None,
    ready_timeout: Optional[float] = None,
    timeout_s: float = 15.0,
    user_agent: str = DEFAULT_USER_AGENT,
    max_pages: Optional[int] = None,
    verbose: bool = False,
) -> CrawlReport:
    """Serve ``directory`` locally and crawl it."""
    def run(live_port: int) -> CrawlReport:
        """Crawl the site served on live_port."""
        fetcher = PageFetcher(live_port, timeout_s=timeout_s, user_agent=user_agent, verbose=verbose)
        return crawl(fetcher, max_pages=max_pages, verbose=verbose)

    return with_server(
        directory,
        port,
        run,
        command=server_command,
        ready_timeout=ready_timeout,
        verbose=verbose,
    )

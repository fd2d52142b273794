from __future__ import annotations

import socket
from typing import Dict, Optional

import pytest

from linkcheck.page import Page, PageStatus, parse_page

ROOT = "http://localhost:8000/"


class FakeFetcher:
    """Serves pages from a dict of URL -> HTML; anything else is a 404."""

    def __init__(self, site: Dict[str, str], root: str = ROOT) -> None:
        self.site = site
        self.root = root
        self.fetched: list[str] = []

    def fetch(self, url: str, referer: Optional[str] = None) -> Page:
        self.fetched.append(url)
        if url not in self.site:
            return Page(url=url, referer=referer, status=PageStatus.NOT_FOUND)
        return parse_page(url, self.site[url], referer=referer)


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]

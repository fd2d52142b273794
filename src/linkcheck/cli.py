"""
Command-line interface for the link checker.
"""
from __future__ import annotations

import argparse
import json
import shlex
import sys
from pathlib import Path
from typing import List, Optional

from linkcheck.director import CrawlReport, check_site
from linkcheck.errors import LinkCheckError
from linkcheck.page import DEFAULT_USER_AGENT
from linkcheck.server import DEFAULT_PORT


def print_summary(report: CrawlReport) -> None:
    """Print crawl summary to stderr."""
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("LINK CHECK SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Total pages crawled:    {report.pages_crawled}\n")
    sys.stderr.write(f"Working links:          {len(report.working)}\n")
    sys.stderr.write(f"Broken links:           {len(report.broken)}\n\n")

    if report.broken:
        sys.stderr.write("Broken:\n")
        for record in report.broken:
            sys.stderr.write(f"  {record}\n")
    else:
        sys.stderr.write("No broken links found.\n")

    sys.stderr.write("\n")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the link checker CLI."""
    parser = argparse.ArgumentParser(
        description="Serve a built site locally, crawl it and report broken links and fragments."
    )
    parser.add_argument("directory", help="Directory holding the built site")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Port for the local server (default: {DEFAULT_PORT})")
    parser.add_argument(
        "--server-command",
        help="Command that serves the site; {directory} and {port} are substituted "
             "(default: the bundled static server)",
    )
    parser.add_argument(
        "--ready-timeout",
        type=float,
        default=None,
        help="Seconds to wait for the server to start listening (default: wait indefinitely)",
    )
    parser.add_argument("--max-pages", type=int, default=None, help="Maximum pages to fetch (default: no limit)")
    parser.add_argument("--timeout", type=float, default=15.0, help="Request timeout in seconds (default: 15)")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument("--out", default="-", help="Output file path, or '-' for stdout (default: -)")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--verbose", action="store_true", help="Show progress and summary")
    args = parser.parse_args(argv)

    if not Path(args.directory).is_dir():
        sys.stderr.write(f"Not a directory: {args.directory}\n")
        return 2

    try:
        report = check_site(
            args.directory,
            port=args.port,
            server_command=shlex.split(args.server_command) if args.server_command else None,
            ready_timeout=args.ready_timeout,
            timeout_s=args.timeout,
            user_agent=args.user_agent,
            max_pages=args.max_pages,
            verbose=args.verbose,
        )
    except LinkCheckError as e:
        sys.stderr.write(f"Link check failed: {e}\n")
        return 2

    if args.verbose:
        print_summary(report)

    json_text = json.dumps(report.to_dict(), ensure_ascii=False, indent=2 if args.pretty else None)

    if args.out == "-":
        print(json_text)
    else:
        output_path = Path(args.out)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_text, encoding="utf-8")
        if args.verbose:
            sys.stderr.write(f"Results written to: {output_path}\n")

    # A non-empty broken list fails the publish gate
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())

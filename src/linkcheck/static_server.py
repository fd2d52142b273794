"""
Minimal static file server used as the default supervised process.

Prints ``Listening on ...`` to stdout once the socket is bound and logs
one line per request to stderr.
"""
from __future__ import annotations

import argparse
import sys
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from typing import List, Optional


def main(argv: Optional[List[str]] = None) -> int:
    """Serve a directory until killed."""
    parser = argparse.ArgumentParser(description="Serve a directory over HTTP.")
    parser.add_argument("--directory", default=".", help="Directory to serve (default: .)")
    parser.add_argument("--port", type=int, required=True, help="Port to bind")
    parser.add_argument("--bind", default="127.0.0.1", help="Address to bind (default: 127.0.0.1)")
    args = parser.parse_args(argv)

    handler = partial(SimpleHTTPRequestHandler, directory=args.directory)
    try:
        httpd = ThreadingHTTPServer((args.bind, args.port), handler)
    except OSError as e:
        sys.stderr.write(f"Could not bind {args.bind}:{args.port}: {e}\n")
        return 1

    sys.stdout.write(f"Listening on http://{args.bind}:{args.port}\n")
    sys.stdout.flush()

    with httpd:
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

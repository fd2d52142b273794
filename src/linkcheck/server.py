"""
Supervision of the local static file server the crawl fetches pages from.
"""
from __future__ import annotations

import subprocess
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Callable, Iterator, List, Optional, Sequence, TypeVar, Union

from linkcheck.errors import ServerStartupFailure

DEFAULT_PORT = 41722

# Substring the supervised process must print on stdout once it is bound
READY_MARKER = "Listening on"

DRAIN_CHUNK = 1024

T = TypeVar("T")


def default_server_command(directory: Union[str, Path], port: int) -> List[str]:
    """Command line for the bundled static file server."""
    return [
        sys.executable, str(Path(__file__).with_name("static_server.py")),
        "--directory", str(directory),
        "--port", str(port),
    ]


class ServerDirector:
    """
    Runs a static file server for the lifetime of one ``with`` block.

    The server is started in ``directory``, the caller is blocked until a
    line containing ``READY_MARKER`` shows up on its stdout, and the
    process is killed when the block exits, however it exits.

    Args:
        directory: Root of the built site.
        port: Port the server binds.
        command: Optional argv for the server. ``{directory}`` and ``{port}``
                 placeholders in each argument are substituted.
        ready_timeout: Seconds to wait for the readiness line. ``None`` waits
                       for as long as the process keeps its stdout open.
        verbose: Echo server output to stderr while waiting for readiness.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        port: int = DEFAULT_PORT,
        command: Optional[Sequence[str]] = None,
        ready_timeout: Optional[float] = None,
        verbose: bool = False,
    ) -> None:
        if not directory:
            raise ValueError("A directory to serve is required")
        self.directory = Path(directory).resolve()
        self.port = port
        self.command = list(command) if command else None
        self.ready_timeout = ready_timeout
        self.verbose = verbose

    def argv(self) -> List[str]:
        """Command line for the server with placeholders filled in."""
        if self.command is None:
            return default_server_command(self.directory, self.port)
        return [
            arg.replace("{directory}", str(self.directory)).replace("{port}", str(self.port))
            for arg in self.command
        ]

    @contextmanager
    def use_server(self) -> Iterator[int]:
        """Start the server, yield its port, kill it on exit."""
        argv = self.argv()
        try:
            proc = subprocess.Popen(
                argv,
                cwd=self.directory,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ServerStartupFailure(f"Could not start server {argv[0]!r}: {e}") from e
        drains: List[threading.Thread] = []
        try:
            self._wait_for_server(proc)
            # Nothing else reads these pipes; a full pipe would block the server
            drains.append(_consume_in_background(proc.stdout))
            drains.append(_consume_in_background(proc.stderr))
            yield self.port
        finally:
            _stop_server(proc, drains)

    def _wait_for_server(self, proc: subprocess.Popen) -> None:
        """Block until the server prints the readiness marker."""
        expired = threading.Event()
        timer = None
        if self.ready_timeout is not None:
            def expire() -> None:
                """Kill the server once the readiness wait runs out."""
                expired.set()
                proc.kill()

            timer = threading.Timer(self.ready_timeout, expire)
            timer.daemon = True
            timer.start()

        try:
            while True:
                raw = proc.stdout.readline()
                if not raw:
                    if expired.is_set():
                        proc.wait()
                        raise ServerStartupFailure(
                            f"Server did not report readiness within {self.ready_timeout}s"
                        )
                    raise ServerStartupFailure(
                        "Server exited before it started listening",
                        returncode=proc.poll(),
                    )
                line = raw.decode("utf-8", errors="replace").rstrip()
                self._log(f"  server: {line}")
                if READY_MARKER in line:
                    break
        finally:
            if timer is not None:
                timer.cancel()

        self._log(f"Server ready on port {self.port}")

    def _log(self, message: str) -> None:
        """Write a progress line to stderr when verbose."""
        if self.verbose:
            sys.stderr.write(message + "\n")
            sys.stderr.flush()


def with_server(
    directory: Union[str, Path],
    port: int,
    fn: Callable[[int], T],
    **options,
) -> T:
    """Call ``fn(port)`` while a server for ``directory`` is listening."""
    with ServerDirector(directory, port, **options).use_server() as live_port:
        return fn(live_port)


def _consume_in_background(stream: IO[bytes]) -> threading.Thread:
    """Read and discard ``stream`` until EOF on a daemon thread."""
    def consume() -> None:
        """Read until EOF."""
        try:
            while stream.read(DRAIN_CHUNK):
                pass
        except (OSError, ValueError):
            # Stream closed underneath us during shutdown
            return

    thread = threading.Thread(target=consume, daemon=True)
    thread.start()
    return thread


def _stop_server(proc: subprocess.Popen, drains: List[threading.Thread]) -> None:
    """Kill the server unless it is already gone, then release its pipes."""
    if proc.poll() is None:
        proc.kill()
    proc.wait()
    for thread in drains:
        thread.join(timeout=1.0)
    for stream in (proc.stdout, proc.stderr):
        if stream is not None:
            stream.close()

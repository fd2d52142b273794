"""Tests for the supervised local server.

The supervised process is a short Python script run with ``sys.executable``
so no real web server is needed, except in the bundled static server tests.
"""
from __future__ import annotations

import socket
import subprocess
import sys
import time

import pytest
import requests

from linkcheck.errors import ServerStartupFailure
from linkcheck.server import READY_MARKER, ServerDirector, with_server

_READY_SCRIPT = """\
import time
print('booting', flush=True)
open('ready.flag', 'w').close()
print('Listening on test', flush=True)
time.sleep(60)
"""

_EXIT_SCRIPT = """\
print('cannot bind', flush=True)
raise SystemExit(3)
"""

_SILENT_SCRIPT = """\
import time
time.sleep(60)
"""

_FLOOD_SCRIPT = """\
import sys, time
print('Listening on test', flush=True)
sys.stderr.write('x' * 5000000)
sys.stderr.flush()
print('y' * 1000000, flush=True)
open('done.flag', 'w').close()
time.sleep(60)
"""


class CountingPopen(subprocess.Popen):
    instances: list["CountingPopen"] = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.kills = 0
        CountingPopen.instances.append(self)

    def kill(self):
        self.kills += 1
        super().kill()


@pytest.fixture
def popen(monkeypatch):
    CountingPopen.instances = []
    monkeypatch.setattr(subprocess, "Popen", CountingPopen)
    return CountingPopen


def _script(source: str) -> list[str]:
    return [sys.executable, "-c", source]


def test_argv_substitutes_placeholders(tmp_path):
    director = ServerDirector(tmp_path, 1234, command=["serve", "--root", "{directory}", "--port={port}"])
    assert director.argv() == ["serve", "--root", str(tmp_path.resolve()), "--port=1234"]


def test_callback_runs_after_readiness(tmp_path, popen):
    seen = []

    def callback(port):
        seen.append((port, (tmp_path / "ready.flag").exists()))
        return "done"

    result = with_server(tmp_path, 4321, callback, command=_script(_READY_SCRIPT))

    assert result == "done"
    assert seen == [(4321, True)]
    (proc,) = popen.instances
    assert proc.kills == 1
    assert proc.returncode is not None


def test_server_killed_when_callback_raises(tmp_path, popen):
    def callback(port):
        raise RuntimeError("crawl blew up")

    with pytest.raises(RuntimeError, match="crawl blew up"):
        with_server(tmp_path, 4321, callback, command=_script(_READY_SCRIPT))

    (proc,) = popen.instances
    assert proc.kills == 1
    assert proc.returncode is not None


def test_startup_failure_when_process_exits_early(tmp_path, popen):
    called = []

    with pytest.raises(ServerStartupFailure):
        with_server(tmp_path, 4321, called.append, command=_script(_EXIT_SCRIPT))

    assert called == []
    (proc,) = popen.instances
    # Only killed if it had not already exited by itself
    assert proc.kills <= 1
    assert proc.returncode is not None


def test_unlaunchable_command_is_startup_failure(tmp_path):
    with pytest.raises(ServerStartupFailure, match="Could not start server"):
        with_server(tmp_path, 4321, lambda port: None, command=["no-such-server-binary", "--port", "{port}"])


def test_ready_timeout_is_opt_in(tmp_path, popen):
    started = time.monotonic()

    with pytest.raises(ServerStartupFailure, match="readiness"):
        with_server(tmp_path, 4321, lambda port: None, command=_script(_SILENT_SCRIPT), ready_timeout=0.5)

    assert time.monotonic() - started < 30
    (proc,) = popen.instances
    assert proc.kills == 1
    assert proc.returncode is not None


def test_server_output_is_logged_when_verbose(tmp_path, capsys):
    with_server(tmp_path, 4321, lambda port: None, command=_script(_READY_SCRIPT), verbose=True)

    err = capsys.readouterr().err
    assert "server: booting" in err
    assert f"server: {READY_MARKER} test" in err


def test_output_flood_after_readiness_does_not_block(tmp_path):
    def wait_for_flood(port):
        deadline = time.monotonic() + 20
        while time.monotonic() < deadline:
            if (tmp_path / "done.flag").exists():
                return True
            time.sleep(0.05)
        return False

    assert with_server(tmp_path, 4321, wait_for_flood, command=_script(_FLOOD_SCRIPT))


def test_bundled_static_server_serves_directory(tmp_path, free_port):
    (tmp_path / "index.html").write_text("<h1 id='top'>Hello</h1>", encoding="utf-8")

    def fetch(port):
        # Enough requests to fill the request log pipe if nothing drained it
        session = requests.Session()
        for _ in range(1500):
            resp = session.get(f"http://localhost:{port}/", timeout=5)
            assert resp.status_code == 200
        return requests.get(f"http://localhost:{port}/nope.html", timeout=5).status_code

    assert with_server(tmp_path, free_port, fetch) == 404


def test_bundled_static_server_reports_bind_failure(tmp_path, free_port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", free_port))
        sock.listen()

        with pytest.raises(ServerStartupFailure):
            with ServerDirector(tmp_path, free_port).use_server():
                pytest.fail("server should not have started")

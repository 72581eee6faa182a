"""
tests/integration/test_live_probes.py — Real probes against local endpoints.

Uses the system resolver, a throwaway HTTP server on 127.0.0.1 and a
subprocess run of the CLI. Nothing leaves the machine, but the tests depend
on a working loopback and /etc/hosts, so they are marked `integration`.

Run explicitly: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import asyncio
import json
import pathlib
import subprocess
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from checker.definitions import parse_checks
from checker.orchestrator import run_checks
from checker.runner import CheckState
from config.settings import Settings

pytestmark = pytest.mark.integration

PROJECT_ROOT = pathlib.Path(__file__).parent.parent.parent


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):  # noqa: N802
        status = 200 if self.path == "/health" else 503
        body = b"ok" if status == 200 else b"maintenance"
        self.send_response(status)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):  # noqa: A002
        pass


@pytest.fixture
def http_base():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def _document(base: str) -> dict:
    return {
        "defaults": {"retryPolicy": {"maxRetries": 1, "initial": 0.05, "multiplier": 1.0}},
        "checks": [
            {"type": "http", "params": {"url": f"{base}/health"}, "labels": {"role": "web"}},
            {"type": "http", "params": {"url": f"{base}/down"}, "labels": {"role": "web"}},
            {"type": "dns", "params": {"domain": "localhost"}, "labels": {"role": "dns"}},
            {"type": "dns", "params": {"domain": "does-not-exist.invalid"}, "labels": {"role": "dns"}},
        ],
    }


def test_real_probes(http_base):
    cfg = Settings()
    definitions = parse_checks(_document(http_base), cfg)
    result = asyncio.run(run_checks(definitions, cfg=cfg))

    states = [o.state for o in result.outcomes]
    assert states == [CheckState.SUCCEEDED, CheckState.FAILED, CheckState.SUCCEEDED, CheckState.FAILED]
    assert result.outcomes[1].reason.startswith("Received HTTP error 503")
    assert "does-not-exist.invalid" in result.outcomes[3].reason
    assert result.outcomes[1].attempts == 2
    assert result.exit_code == 1


def test_cli_subprocess(http_base, tmp_path):
    doc = tmp_path / "checks.json"
    doc.write_text(json.dumps(_document(http_base)), encoding="utf-8")
    report = tmp_path / "report.json"

    proc = subprocess.run(
        [
            sys.executable, "-m", "checker.cli", str(doc),
            "--on", "role:web",
            "--report", str(report),
            "--env-file", str(tmp_path / "absent.env"),
        ],
        cwd=str(PROJECT_ROOT),
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert proc.returncode == 1, proc.stderr
    assert "Health checks complete: 1/2 passed" in proc.stdout
    assert json.loads(report.read_text())["total"] == 2

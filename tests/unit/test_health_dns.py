"""Unit tests for checker.health.dns with the resolver monkeypatched."""

from __future__ import annotations

import asyncio
import socket
import time

from checker.definitions import CheckDefinition, DnsParams
from checker.health import dns as health_dns
from checker.orchestrator import run_checks
from config.settings import Settings


def _check(domain: str = "db.example.internal"):
    return asyncio.run(health_dns.make_probe()(DnsParams(domain=domain)))


def _definition(kind: str = "dns", max_retries: int = 0, timeout: float = 1.0) -> CheckDefinition:
    params = {"domain": "db.example.internal"} if kind == "dns" else {"hostname": "web1", "command": "true"}
    return CheckDefinition.model_validate(
        {
            "type": kind,
            "params": params,
            "retryPolicy": {"maxRetries": max_retries, "initial": 0.01, "multiplier": 1},
            "checkTimeout": timeout,
        }
    )


def test_resolved_addresses_pass(monkeypatch):
    async def fake_resolve(domain, executor=None):
        return ["10.0.0.5", "10.0.0.6"]

    monkeypatch.setattr(health_dns, "resolve", fake_resolve)
    result = _check()
    assert result.ok is True
    assert result.detail == "resolved: 10.0.0.5, 10.0.0.6"


def test_resolution_failure_names_domain(monkeypatch):
    async def fake_resolve(domain, executor=None):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(health_dns, "resolve", fake_resolve)
    result = _check("nope.invalid")
    assert result.ok is False
    assert result.reason.startswith("DNS resolution failed for 'nope.invalid'")
    assert "Name or service not known" in result.reason


def test_empty_answer_fails(monkeypatch):
    async def fake_resolve(domain, executor=None):
        return []

    monkeypatch.setattr(health_dns, "resolve", fake_resolve)
    assert _check().reason == "DNS resolution failed for 'db.example.internal': no addresses"


def test_other_os_error_is_lookup_error(monkeypatch):
    async def fake_resolve(domain, executor=None):
        raise OSError("resolver socket closed")

    monkeypatch.setattr(health_dns, "resolve", fake_resolve)
    assert _check().reason.startswith("DNS lookup error for 'db.example.internal'")


def test_resolve_deduplicates_and_sorts(monkeypatch):
    infos = [
        (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.9", 0)),
        (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.1", 0)),
        (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.9", 0)),
    ]
    monkeypatch.setattr(health_dns.socket, "getaddrinfo", lambda *args, **kwargs: infos)
    assert asyncio.run(health_dns.resolve("db.example.internal")) == ["10.0.0.1", "10.0.0.9"]


def test_lookup_slots_cover_every_dns_attempt():
    definitions = [
        _definition(max_retries=0),
        _definition(max_retries=3),
        _definition(kind="ssh", max_retries=5),
    ]
    assert health_dns.lookup_slots(definitions) == 1 + 4
    assert health_dns.lookup_slots([]) == 0


def test_slow_lookups_do_not_queue_behind_each_other(monkeypatch):
    def slow_getaddrinfo(host, port, *args, **kwargs):
        time.sleep(0.4)
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.5", 0))]

    monkeypatch.setattr(health_dns.socket, "getaddrinfo", slow_getaddrinfo)
    definitions = [_definition(timeout=1.0) for _ in range(40)]
    result = asyncio.run(run_checks(definitions, cfg=Settings()))
    assert result.total == 40
    assert result.failed_count == 0


def test_timed_out_lookup_does_not_hold_up_later_attempts(monkeypatch):
    calls = {"n": 0}

    def first_call_hangs(host, port, *args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            time.sleep(1.5)
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.5", 0))]

    monkeypatch.setattr(health_dns.socket, "getaddrinfo", first_call_hangs)
    result = asyncio.run(run_checks([_definition(max_retries=1, timeout=0.3)], cfg=Settings()))
    (outcome,) = result.outcomes
    assert outcome.attempts == 2
    assert outcome.reason is None

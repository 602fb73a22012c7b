"""Tests for the runtime probe: scenarios, resolver and runner."""

import asyncio
import textwrap
import time
from pathlib import Path

import pytest
from pydantic import ValidationError

from stateguard.async_runner import call_with_timeout, is_async_callable
from stateguard.config import ProbeConfig
from stateguard.diagnostics import ConstructionError, ProbeTimeoutError, ResolutionError
from stateguard.probe import (
    ProbeCall,
    ProbeScenario,
    ServiceResolver,
    format_probe,
    load_scenario,
    probe_instance,
    run_probe,
)

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def resolver():
    return ServiceResolver(project_root=PROJECT_ROOT)


class Sleeper:
    def nap(self, seconds=0.5):
        time.sleep(seconds)

    async def anap(self, seconds=0.5):
        await asyncio.sleep(seconds)


# =============================================================================
# Async runner
# =============================================================================


def test_call_with_timeout_sync_and_async():
    """Should run sync and async callables and return their results."""

    async def double(x):
        return x * 2

    assert is_async_callable(double)
    assert not is_async_callable(len)
    assert call_with_timeout("abc".upper) == "ABC"
    assert call_with_timeout(double, {"x": 4}, timeout_ms=1000) == 8


@pytest.mark.parametrize("method", ["nap", "anap"])
def test_call_with_timeout_expires(method):
    """Should raise ProbeTimeoutError when a call runs too long."""
    with pytest.raises(ProbeTimeoutError, match="timed out after 20ms"):
        call_with_timeout(getattr(Sleeper(), method), timeout_ms=20)


# =============================================================================
# Scenarios
# =============================================================================


def test_load_scenario(tmp_path):
    """Should load a YAML scenario with defaults."""
    path = tmp_path / "scenario.yaml"
    path.write_text(
        textwrap.dedent(
            """\
            target: example.mailer.DocumentMailer
            calls:
              - method: send
                kwargs: {customer_id: 1, document: a.pdf}
                timeout_ms: 100
            """
        )
    )

    scenario = load_scenario(path)

    assert scenario.repeat == 1
    assert scenario.calls[0].kwargs == {"customer_id": 1, "document": "a.pdf"}
    assert scenario.calls[0].timeout_ms == 100


@pytest.mark.parametrize(
    "data",
    [
        {"target": "a.B", "calls": []},
        {"target": "a.B", "calls": [{"method": "x"}], "repeat": 0},
        {"calls": [{"method": "x"}]},
    ],
)
def test_invalid_scenarios(data):
    """Should reject scenarios without calls, target or a positive repeat."""
    with pytest.raises(ValidationError):
        ProbeScenario.model_validate(data)


# =============================================================================
# Resolver
# =============================================================================


def test_resolve_class(resolver):
    """Should import a dotted class path."""
    cls = resolver.resolve_class("example.mailer.DocumentMailer")

    assert cls.__name__ == "DocumentMailer"


@pytest.mark.parametrize(
    "target, message",
    [
        ("DocumentMailer", "Invalid target format"),
        ("example.mailer.Missing", "Could not resolve target"),
        ("example.mailer.API_URL", "is not a class"),
    ],
)
def test_resolve_class_errors(resolver, target, message):
    """Should raise ResolutionError with what was searched."""
    with pytest.raises(ResolutionError, match=message):
        resolver.resolve_class(target)


def test_build_uses_factory(resolver):
    """Should build through the flat factory file when one exists."""
    mailer = resolver.build("example.mailer.DocumentMailer")

    assert mailer.send(1, "a.pdf") == {"status": 202, "id": 1}


def test_build_falls_back_to_zero_arg_constructor(resolver):
    """Should construct classes that take no arguments directly."""
    client = resolver.build("example.transport.RecordingHttpClient")

    assert client.requests == []


def test_build_without_factory_suggests_one(tmp_path):
    """Should explain how to add a factory when construction fails."""
    resolver = ServiceResolver(
        project_root=PROJECT_ROOT,
        config=ProbeConfig(factories=str(tmp_path / "factories")),
    )

    with pytest.raises(ConstructionError) as exc_info:
        resolver.build("example.mailer.DocumentMailer")

    message = str(exc_info.value)
    assert "Cannot construct DocumentMailer" in message
    assert "def document_mailer() -> DocumentMailer" in message


def test_failing_constructor_becomes_construction_error(tmp_path):
    """Should wrap any constructor failure and still suggest a factory."""
    (tmp_path / "misconfigured_service.py").write_text(
        textwrap.dedent(
            """\
            class Misconfigured:
                def __init__(self):
                    raise RuntimeError("no config")
            """
        )
    )
    resolver = ServiceResolver(project_root=tmp_path)

    with pytest.raises(ConstructionError) as exc_info:
        resolver.build("misconfigured_service.Misconfigured")

    message = str(exc_info.value)
    assert "RuntimeError: no config" in message
    assert "def misconfigured() -> Misconfigured" in message
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_build_uses_class_named_factory(tmp_path):
    """Should find a factory file named after the class."""
    factories = tmp_path / "factories"
    factories.mkdir()
    (factories / "document_mailer.py").write_text(
        textwrap.dedent(
            """\
            from example.mailer import DocumentMailer
            from example.transport import RecordingHttpClient

            def document_mailer():
                return DocumentMailer(RecordingHttpClient(), api_key="from-class-file")
            """
        )
    )
    resolver = ServiceResolver(project_root=PROJECT_ROOT, config=ProbeConfig(factories=str(factories)))

    mailer = resolver.build("example.mailer.DocumentMailer")

    assert mailer._api_key == "from-class-file"


# =============================================================================
# Runner
# =============================================================================


def test_stateless_mailer_scenario(resolver):
    """Should find no state changes in the constructor-configured mailer."""
    scenario = load_scenario(PROJECT_ROOT / "probes" / "scenarios" / "document_mailer.yaml")

    report = run_probe(scenario, resolver)

    assert report.stateless
    assert len(report.outcomes) == 4
    assert [o.round for o in report.outcomes] == [1, 1, 2, 2]
    assert "DocumentMailer is stateless (4 calls)" in format_probe(report)


def test_stateful_mailer_scenario(resolver):
    """Should record the field each setter leaves behind."""
    scenario = load_scenario(PROJECT_ROOT / "probes" / "scenarios" / "stateful_document_mailer.yaml")

    report = run_probe(scenario, resolver)

    assert not report.stateless
    assert [o.changes for o in report.outcomes] == [
        ["self._api_key changed"],
        ["self._customer_id changed"],
        ["self._document changed"],
        [],
    ]
    output = format_probe(report)
    assert "✗ round 1: set_customer()" in output
    assert "StatefulDocumentMailer is stateful (4 calls)" in output


def test_probe_records_errors_and_continues():
    """Should record a failing call and keep probing."""
    from example.mailer import StatefulDocumentMailer
    from example.transport import RecordingHttpClient

    scenario = ProbeScenario(
        target="example.mailer.StatefulDocumentMailer",
        calls=[ProbeCall(method="send"), ProbeCall(method="set_customer", kwargs={"customer_id": 3})],
    )

    report = probe_instance(StatefulDocumentMailer(RecordingHttpClient()), scenario)

    assert report.failed_calls == 1
    assert report.outcomes[0].error.startswith("MailerError:")
    assert report.outcomes[1].changes == ["self._customer_id changed"]
    assert "1 raised" in format_probe(report)


def test_probe_applies_timeouts():
    """Should use the per-call timeout over the default."""
    scenario = ProbeScenario(
        target="tests.Sleeper",
        calls=[ProbeCall(method="nap", kwargs={"seconds": 0.2}, timeout_ms=10)],
    )

    report = probe_instance(Sleeper(), scenario, default_timeout_ms=5000)

    assert report.outcomes[0].error == "Call timed out after 10ms"

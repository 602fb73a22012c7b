"""Tests for the worked mailer example."""

from pathlib import Path

import pytest

from example.mailer import DocumentMailer, MailerError, StatefulDocumentMailer
from example.transport import HttpClient, RecordingHttpClient
from example.worker import DocumentJob, JobWorker, LegacyJobWorker
from stateguard.analysis import analyze_file
from stateguard.container import Container, Lifetime

EXAMPLE = Path(__file__).resolve().parents[1] / "example"


def build_mailer(http: HttpClient) -> DocumentMailer:
    return DocumentMailer(http, api_key="k")


def test_legacy_worker_leaks_previous_document():
    """Should show a job without a document reusing the previous job's document."""
    http = RecordingHttpClient()
    mailer = StatefulDocumentMailer(http)
    mailer.set_api_key("k")
    worker = LegacyJobWorker(mailer)

    worker.process([DocumentJob(1, "invoice-1.pdf"), DocumentJob(2)])

    assert [r.url.rsplit("/", 2)[-2] for r in http.requests] == ["1", "2"]
    # Customer 2 received customer 1's invoice
    assert http.requests[1].json == {"document": "invoice-1.pdf"}


def test_legacy_worker_fails_without_api_key():
    """Should report the failure of an unconfigured mailer per job."""
    worker = LegacyJobWorker(StatefulDocumentMailer(RecordingHttpClient()))

    results = worker.process([DocumentJob(1, "a.pdf")])

    assert results[0]["status"] == "failed"


def test_stateless_worker_fails_cleanly():
    """Should reject a job without a document instead of guessing one."""
    http = RecordingHttpClient()
    worker = JobWorker(DocumentMailer(http, api_key="k"))

    results = worker.process([DocumentJob(1, "invoice-1.pdf"), DocumentJob(2)])

    assert results[0] == {"status": 202, "id": 1}
    assert results[1] == {"status": "failed", "error": "job for customer 2 has no document"}
    assert len(http.requests) == 1


def test_document_mailer_requires_api_key():
    """Should refuse an empty key at construction."""
    with pytest.raises(MailerError):
        DocumentMailer(RecordingHttpClient(), api_key="")


def test_delivery_with_cc():
    """Should include cc addresses in the payload."""
    from example.mailer import Delivery

    http = RecordingHttpClient()
    mailer = DocumentMailer(http, api_key="k", base_url="https://mail.test/v2/")

    mailer.send_delivery(Delivery(customer_id=5, document="d.pdf", cc=("ops@test",)))

    request = http.requests[0]
    assert request.url == "https://mail.test/v2/customers/5/documents"
    assert request.json == {"document": "d.pdf", "cc": ["ops@test"]}
    assert request.headers == {"Authorization": "Bearer k"}


def test_static_check_of_example():
    """Should flag only the setter-based mailer in the example package."""
    report = analyze_file(EXAMPLE / "mailer.py")

    assert {f.class_name for f in report.findings} == {"StatefulDocumentMailer"}
    assert [f.method for f in report.findings] == ["set_api_key", "set_customer", "set_document"]


def test_transport_suppression_holds():
    """Should honor the class-level pragma on the recording client."""
    assert analyze_file(EXAMPLE / "transport.py").findings == []


def test_worker_wired_through_strict_container():
    """Should wire the stateless worker with a shared, guarded mailer."""
    container = Container(strict=True)
    container.register(HttpClient, RecordingHttpClient, lifetime=Lifetime.TRANSIENT)
    container.register(DocumentMailer, build_mailer)
    container.register(JobWorker, lifetime=Lifetime.TRANSIENT)

    worker = container.resolve(JobWorker)
    results = worker.process([DocumentJob(1, "a.pdf"), DocumentJob(2, "b.pdf")])

    assert [r["id"] for r in results] == [1, 2]

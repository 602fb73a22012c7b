"""Factories for example.mailer classes."""

from example.mailer import DocumentMailer, StatefulDocumentMailer
from example.transport import RecordingHttpClient


def document_mailer() -> DocumentMailer:
    """Factory for DocumentMailer with a recording client and a test key."""
    return DocumentMailer(RecordingHttpClient(), api_key="test-key")


def stateful_document_mailer() -> StatefulDocumentMailer:
    return StatefulDocumentMailer(RecordingHttpClient())

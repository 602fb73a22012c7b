"""Queue-worker stand-in: one mailer instance serves every job."""

from dataclasses import dataclass

from example.mailer import DocumentMailer, MailerError, StatefulDocumentMailer


@dataclass(frozen=True)
class DocumentJob:
    customer_id: int
    document: str | None = None


class LegacyJobWorker:
    """Drives the setter-based mailer.

    A job without a document skips set_document(), so send() picks up the
    document left behind by the previous job.
    """

    def __init__(self, mailer: StatefulDocumentMailer):
        self._mailer = mailer

    def handle(self, job: DocumentJob) -> dict:
        self._mailer.set_customer(job.customer_id)
        if job.document is not None:
            self._mailer.set_document(job.document)
        return self._mailer.send()

    def process(self, jobs: list[DocumentJob]) -> list[dict]:
        return [_attempt(self.handle, job) for job in jobs]


class JobWorker:
    """Drives the stateless mailer; each job carries everything it needs."""

    def __init__(self, mailer: DocumentMailer):
        self._mailer = mailer

    def handle(self, job: DocumentJob) -> dict:
        if job.document is None:
            raise MailerError(f"job for customer {job.customer_id} has no document")
        return self._mailer.send(job.customer_id, job.document)

    def process(self, jobs: list[DocumentJob]) -> list[dict]:
        return [_attempt(self.handle, job) for job in jobs]


def _attempt(handle, job: DocumentJob) -> dict:
    try:
        return handle(job)
    except MailerError as e:
        return {"status": "failed", "error": str(e)}

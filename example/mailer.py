"""Document mailer, before and after removing setter-based state."""

from dataclasses import dataclass

from example.transport import HttpClient

API_URL = "https://mail.example.com/v1"


class MailerError(Exception):
    """The mailer was asked to send something incomplete."""


class StatefulDocumentMailer:
    """Before: credentials and per-call values arrive through setters.

    Usable only if every caller calls the right setters, in order, on an
    instance nobody else touches in between.
    """

    def __init__(self, http: HttpClient):
        self._http = http
        self._api_key: str | None = None
        self._customer_id: int | None = None
        self._document: str | None = None

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def set_customer(self, customer_id: int) -> None:
        self._customer_id = customer_id

    def set_document(self, document: str) -> None:
        self._document = document

    def send(self) -> dict:
        if self._api_key is None or self._customer_id is None or self._document is None:
            raise MailerError("api key, customer and document must be set before send()")
        return self._http.post(
            f"{API_URL}/customers/{self._customer_id}/documents",
            json={"document": self._document},
            headers={"Authorization": f"Bearer {self._api_key}"},
        )


@dataclass(frozen=True)
class Delivery:
    """Everything that varies per send, as one immutable value."""

    customer_id: int
    document: str
    cc: tuple[str, ...] = ()


class DocumentMailer:
    """After: fixed configuration in the constructor, per-call values as arguments.

    Safe to share as a singleton: send() reads only constructor fields.
    """

    def __init__(self, http: HttpClient, api_key: str, base_url: str = API_URL):
        if not api_key:
            raise MailerError("api key must not be empty")
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    def send(self, customer_id: int, document: str) -> dict:
        """Send a document to a customer."""
        return self.send_delivery(Delivery(customer_id=customer_id, document=document))

    def send_delivery(self, delivery: Delivery) -> dict:
        """Send a prepared delivery."""
        payload: dict = {"document": delivery.document}
        if delivery.cc:
            payload["cc"] = list(delivery.cc)
        return self._http.post(
            f"{self._base_url}/customers/{delivery.customer_id}/documents",
            json=payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )

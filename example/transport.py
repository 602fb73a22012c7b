"""HTTP transport used by the mailer examples.

There is no real network client here; RecordingHttpClient stands in for one.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


class HttpClient(Protocol):
    def post(self, url: str, json: dict[str, Any], headers: dict[str, str]) -> dict: ...


@dataclass
class Request:
    url: str
    json: dict[str, Any]
    headers: dict[str, str]


class RecordingHttpClient:  # stateguard: ignore[mutable-state]
    """Fake client that records every request and answers 202.

    Recording is its whole job, so its state is expected to change.
    """

    def __init__(self):
        self.requests: list[Request] = []

    def post(self, url: str, json: dict[str, Any], headers: dict[str, str]) -> dict:
        self.requests.append(Request(url=url, json=dict(json), headers=dict(headers)))
        return {"status": 202, "id": len(self.requests)}

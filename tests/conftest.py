"""Shared fixtures for the release tool tests."""

import json
from typing import Any, Dict, List, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from googleapiclient.http import HttpMockSequence

ISSUER_ID = "69a6de70-03db-47e3-e053-5b8c7c11a4d1"
KEY_ID = "ABC123DEFG"


def _pem(private_key) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def ec_private_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def app_store_key_path(tmp_path, ec_private_key):
    path = tmp_path / f"AuthKey_{KEY_ID}.p8"
    path.write_text(_pem(ec_private_key), encoding="utf-8")
    return str(path)


@pytest.fixture
def rsa_pem(rsa_private_key):
    return _pem(rsa_private_key)


@pytest.fixture
def service_account_path(tmp_path, rsa_pem):
    path = tmp_path / "service-account.json"
    path.write_text(
        json.dumps(
            {
                "type": "service_account",
                "client_email": "publisher@example.iam.gserviceaccount.com",
                "private_key_id": "key-1",
                "private_key": rsa_pem,
            }
        ),
        encoding="utf-8",
    )
    return str(path)


class Clock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return Clock()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Stand-in for ``requests.Session`` that replays queued responses."""

    def __init__(self, responses: List[Any]) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self):
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._next()

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession


class RecordingHttp(HttpMockSequence):
    """HttpMockSequence that also remembers every request it served."""

    def __init__(self, iterable):
        super().__init__(iterable)
        self.requests: List[Dict[str, Any]] = []

    def request(self, uri, method="GET", body=None, headers=None, redirections=1, connection_type=None):
        self.requests.append({"uri": uri, "method": method, "body": body, "headers": dict(headers or {})})
        return super().request(
            uri,
            method=method,
            body=body,
            headers=headers,
            redirections=redirections,
            connection_type=connection_type,
        )


@pytest.fixture
def recording_http():
    return RecordingHttp

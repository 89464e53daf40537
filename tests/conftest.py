from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def _private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    return _private_key_pem()


@pytest.fixture()
def service_account_file(tmp_path: Path, private_key_pem: str) -> Path:
    path = tmp_path / "jwt-key.json"
    path.write_text(
        json.dumps(
            {
                "type": "service_account",
                "project_id": "bridge-test",
                "private_key_id": "abc123",
                "private_key": private_key_pem,
                "client_email": "bridge@bridge-test.iam.gserviceaccount.com",
            }
        ),
        encoding="utf-8",
    )
    return path

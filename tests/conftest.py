from __future__ import annotations

from typing import Any

import pytest

from mailattest.agent.qr_artifact import ArtifactStore, CodeArtifact
from mailattest.authority import Identity
from mailattest.config import build_config


CALLBACK_URL = "https://cb/verify"


class StubAuthority:
    """Credential authority double that records every call."""

    def __init__(
        self,
        *,
        request_token: str = "RT1",
        identity: Identity = Identity(address="0xabc", push_token="PT1"),
        attestation: str = "ATT1",
    ):
        self.request_token = request_token
        self.identity = identity
        self.attestation = attestation
        self.calls: dict[str, list[Any]] = {"create_request": [], "receive": [], "attest": [], "push": []}
        self.failures: dict[str, Exception] = {}

    def _record(self, name: str, value: Any) -> None:
        self.calls[name].append(value)
        if name in self.failures:
            raise self.failures[name]

    async def create_request(self, params):
        self._record("create_request", dict(params))
        return self.request_token

    async def receive(self, access_token):
        self._record("receive", access_token)
        return self.identity

    async def attest(self, claim):
        self._record("attest", claim)
        return self.attestation

    async def push(self, push_token, payload):
        self._record("push", (push_token, dict(payload)))


class FakeTransport:
    """Mail transport double that keeps sent messages in memory."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.messages = []

    async def send(self, message):
        if self.error is not None:
            raise self.error
        self.messages.append(message)
        return {"rejected": [], "response": "250 OK"}


class CountingArtifactStore(ArtifactStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.created: list[CodeArtifact] = []
        self.deleted: list[CodeArtifact] = []

    async def create(self, uri):
        artifact = await super().create(uri)
        self.created.append(artifact)
        return artifact

    async def delete(self, artifact):
        self.deleted.append(artifact)
        return await super().delete(artifact)


@pytest.fixture
def authority():
    return StubAuthority()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def artifact_dir(tmp_path):
    path = tmp_path / "artifacts"
    path.mkdir()
    return path


@pytest.fixture
def config(authority, artifact_dir):
    return build_config(
        credential_authority=authority,
        callback_url=CALLBACK_URL,
        user="verifier@uport.me",
        password="secret",
        host="smtp.uport.me",
        port=465,
        secure=True,
        artifact_dir=artifact_dir,
    )


@pytest.fixture
def artifacts(artifact_dir):
    return CountingArtifactStore(artifact_dir)

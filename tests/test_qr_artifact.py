import asyncio
import os
import re
from datetime import datetime, timedelta, timezone

import pytest

from mailattest.agent.qr_artifact import (
    ARTIFACT_PREFIX,
    ArtifactStore,
    sweep_orphaned_artifacts,
)
from mailattest.errors import ArtifactIOFailed


URI = "me.uport:add?attestations=ATT1"


def test_create_writes_png_with_random_name(artifact_dir):
    store = ArtifactStore(artifact_dir)

    artifact = asyncio.run(store.create(URI))

    assert artifact.path.parent == artifact_dir
    assert re.fullmatch(r"mailattest-qr-[0-9a-f]{32}\.png", artifact.path.name)
    assert artifact.path.read_bytes().startswith(b"\x89PNG")
    assert artifact.uri == URI
    assert artifact.cid_uri == f"cid:{artifact.artifact_id}"


def test_concurrent_creates_never_collide(artifact_dir):
    store = ArtifactStore(artifact_dir, encoder=lambda uri: uri.encode("utf-8"))

    async def run():
        return await asyncio.gather(*(store.create(f"{URI}{index}") for index in range(25)))

    created = asyncio.run(run())

    assert len({artifact.path for artifact in created}) == 25
    assert len(list(artifact_dir.iterdir())) == 25


def test_create_in_missing_directory_fails(tmp_path):
    store = ArtifactStore(tmp_path / "does-not-exist")

    with pytest.raises(ArtifactIOFailed):
        asyncio.run(store.create(URI))


def test_delete_is_best_effort(artifact_dir):
    store = ArtifactStore(artifact_dir)
    artifact = asyncio.run(store.create(URI))

    assert asyncio.run(store.delete(artifact)) is None
    assert not artifact.path.exists()

    failure = asyncio.run(store.delete(artifact))
    assert isinstance(failure, ArtifactIOFailed)
    assert failure.step == "artifact"


def test_scoped_artifact_removed_when_body_raises(artifact_dir):
    store = ArtifactStore(artifact_dir)
    seen = []

    async def run():
        async with store.scoped(URI) as artifact:
            seen.append(artifact)
            raise RuntimeError("send failed")

    with pytest.raises(RuntimeError, match="send failed"):
        asyncio.run(run())

    assert len(seen) == 1
    assert not seen[0].path.exists()
    assert list(artifact_dir.iterdir()) == []


def test_sweep_only_removes_stale_artifacts(artifact_dir):
    now = datetime.now(timezone.utc)
    stale = artifact_dir / f"{ARTIFACT_PREFIX}{'a' * 32}.png"
    fresh = artifact_dir / f"{ARTIFACT_PREFIX}{'b' * 32}.png"
    unrelated = artifact_dir / "keep-me.png"
    for path in (stale, fresh, unrelated):
        path.write_bytes(b"png")

    old = (now - timedelta(hours=2)).timestamp()
    os.utime(stale, (old, old))
    os.utime(unrelated, (old, old))

    removed = sweep_orphaned_artifacts(artifact_dir, timedelta(hours=1), now=now)

    assert removed == [stale]
    assert not stale.exists()
    assert fresh.exists()
    assert unrelated.exists()


def test_encoder_error_is_an_artifact_failure(artifact_dir):
    def broken_encoder(uri):
        raise RuntimeError("encoder crashed")

    store = ArtifactStore(artifact_dir, encoder=broken_encoder)

    with pytest.raises(ArtifactIOFailed, match="Could not encode") as excinfo:
        asyncio.run(store.create(URI))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert list(artifact_dir.iterdir()) == []

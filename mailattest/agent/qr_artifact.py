"""Transient QR code image files.

Every flow that mails a code renders the URI into its own PNG file, uses it
for exactly one message and removes it again.  File names carry 16 bytes of
randomness and are opened with exclusive-create semantics, so concurrent flows
never share or overwrite a file.  Deletion is best effort: a file that cannot
be removed is reported to the caller and logged, never raised.
"""

from __future__ import annotations

import asyncio
import io
import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Callable

import qrcode

from ..errors import ArtifactIOFailed


logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "mailattest-qr-"
ARTIFACT_SUFFIX = ".png"


@dataclass(frozen=True)
class CodeArtifact:
    """QR image written for a single message."""

    artifact_id: str
    path: Path
    uri: str

    @property
    def cid_uri(self) -> str:
        return f"cid:{self.artifact_id}"


def render_qr_png(uri: str) -> bytes:
    """Encode ``uri`` as a PNG QR code."""

    image = qrcode.make(uri)
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def _write_exclusive(path: Path, data: bytes) -> None:
    with path.open("xb") as handle:
        handle.write(data)


class ArtifactStore:
    """Create and remove QR artifacts inside ``directory``."""

    def __init__(self, directory: Path, *, encoder: Callable[[str], bytes] = render_qr_png):
        self.directory = Path(directory)
        self._encoder = encoder

    async def create(self, uri: str) -> CodeArtifact:
        artifact_id = secrets.token_hex(16)
        path = self.directory / f"{ARTIFACT_PREFIX}{artifact_id}{ARTIFACT_SUFFIX}"
        try:
            data = await asyncio.to_thread(self._encoder, uri)
        except Exception as exc:
            raise ArtifactIOFailed(f"Could not encode QR artifact for {uri!r}: {exc}") from exc
        try:
            await asyncio.to_thread(_write_exclusive, path, data)
        except OSError as exc:
            raise ArtifactIOFailed(f"Could not write QR artifact {path.name}: {exc}") from exc
        logger.debug("Wrote QR artifact %s", path)
        return CodeArtifact(artifact_id=artifact_id, path=path, uri=uri)

    async def delete(self, artifact: CodeArtifact) -> ArtifactIOFailed | None:
        """Remove ``artifact`` from disk.

        Returns the failure instead of raising it so cleanup can never fail
        the flow that used the artifact.
        """

        try:
            await asyncio.to_thread(artifact.path.unlink)
        except OSError as exc:
            logger.warning("Could not remove QR artifact %s: %s", artifact.path, exc)
            return ArtifactIOFailed(f"Could not remove QR artifact {artifact.path.name}: {exc}")
        logger.debug("Removed QR artifact %s", artifact.path)
        return None

    @asynccontextmanager
    async def scoped(self, uri: str) -> AsyncIterator[CodeArtifact]:
        """Create an artifact for the duration of the ``async with`` block."""

        artifact = await self.create(uri)
        try:
            yield artifact
        finally:
            await self.delete(artifact)


def sweep_orphaned_artifacts(
    directory: Path, older_than: timedelta, *, now: datetime | None = None
) -> list[Path]:
    """Remove artifact files whose modification time is older than ``older_than``.

    Covers files left behind by a process that died between create and delete.
    Returns the paths that were removed.
    """

    current_time = now or datetime.now(timezone.utc)
    cutoff = (current_time - older_than).timestamp()
    removed: list[Path] = []

    for path in sorted(Path(directory).glob(f"{ARTIFACT_PREFIX}*{ARTIFACT_SUFFIX}")):
        try:
            if path.stat().st_mtime >= cutoff:
                continue
            path.unlink()
        except OSError as exc:
            logger.warning("Could not sweep QR artifact %s: %s", path, exc)
            continue
        removed.append(path)

    if removed:
        logger.info("Swept %d orphaned QR artifact(s) from %s", len(removed), directory)
    return removed


__all__ = [
    "ARTIFACT_PREFIX",
    "ArtifactStore",
    "CodeArtifact",
    "render_qr_png",
    "sweep_orphaned_artifacts",
]

"""
forum/uploads.py -- Attachment storage for posts.

Accepts an opaque byte stream plus the client's filename and returns a path
that is recorded on the Post. File contents are never inspected.

The stored name is "<random hex>_<safe basename>": the random prefix keeps
uploads from colliding or overwriting each other, and the basename is reduced
to [A-Za-z0-9._-] so a client filename cannot traverse out of the upload root.
"""

import logging
import re
import secrets
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger("agora.forum.uploads")

_CHUNK_SIZE = 64 * 1024
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_NAME_LENGTH = 100


class PayloadTooLarge(ValueError):
    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        super().__init__(f"Attachment exceeds {max_bytes} bytes.")


def safe_filename(filename: str | None) -> str:
    """Reduce a client-supplied filename to a safe basename."""
    name = Path((filename or "").replace("\\", "/")).name
    name = _UNSAFE_CHARS.sub("_", name).lstrip("._")[-_MAX_NAME_LENGTH:]
    return name or "attachment"


class AttachmentStorage:
    """Writes attachments under root, refusing anything over max_bytes."""

    def __init__(self, root: str | Path, max_bytes: int) -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes

    def save(self, stream: BinaryIO, filename: str | None) -> str:
        """Copy stream to a new file and return its path relative to root.

        Raises PayloadTooLarge (after removing the partial file) when the
        stream is longer than max_bytes.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        stored_name = f"{secrets.token_hex(8)}_{safe_filename(filename)}"
        target = self.root / stored_name

        written = 0
        with target.open("wb") as out:
            while chunk := stream.read(_CHUNK_SIZE):
                written += len(chunk)
                if written > self.max_bytes:
                    break
                out.write(chunk)
        if written > self.max_bytes:
            target.unlink(missing_ok=True)
            raise PayloadTooLarge(self.max_bytes)

        logger.info("Stored attachment %s (%d bytes)", stored_name, written)
        return stored_name

    def resolve(self, stored_name: str) -> Path:
        """Map a stored name back to its file, refusing paths outside root."""
        path = (self.root / stored_name).resolve()
        if path.parent != self.root.resolve():
            raise ValueError("Invalid attachment path.")
        return path

    def discard(self, stored_name: str) -> None:
        """Remove a stored attachment whose post was never created."""
        self.resolve(stored_name).unlink(missing_ok=True)
        logger.info("Discarded attachment %s", stored_name)

"""
Blob store for uploaded PDFs.

Files live flat in one directory under generated names of the form
    {epoch millis}-{random}-{original name}
so concurrent uploads with the same original name never share a target path,
while the client's name stays readable at the end.
"""

import logging
import os
import secrets
import time

import aiofiles
import aiofiles.os

logger = logging.getLogger("storage")

CHUNK_SIZE = 1024 * 1024  # 1 MiB per read/write step

# Room for the "{millis}-{random}-" prefix (at most 24 bytes) under NAME_MAX (255).
MAX_NAME_BYTES = 200


def _safe_name(filename: str) -> str:
    # Client names must never escape the upload directory.
    safe = filename.replace("/", "_").replace("\\", "_").strip()
    encoded = safe.encode("utf-8")
    if len(encoded) > MAX_NAME_BYTES:
        # Keep the tail so the extension survives; drop any split character.
        safe = encoded[-MAX_NAME_BYTES:].decode("utf-8", errors="ignore").strip()
    if safe in ("", ".", ".."):
        return "upload.pdf"
    return safe


class BlobStore:
    def __init__(self, root: str):
        self.root = root

    def generate_name(self, original_name: str) -> str:
        millis = int(time.time() * 1000)
        rand = secrets.randbelow(1_000_000_000)
        return f"{millis}-{rand}-{_safe_name(original_name)}"

    def path_for(self, stored_name: str) -> str:
        return os.path.join(self.root, stored_name)

    async def put(self, stream, original_name: str) -> str:
        """
        Copy everything readable from 'stream' into a new file and return its
        stored name.

        'stream' is anything with an async read(size) method (FastAPI's
        UploadFile in practice). Chunks are awaited one at a time so a large
        upload never blocks the event loop. A failed write removes the partial
        file and re-raises, so the caller sees the error.
        """
        stored_name = self.generate_name(original_name)
        path = self.path_for(stored_name)
        try:
            async with aiofiles.open(path, "wb") as f:
                while True:
                    chunk = await stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    await f.write(chunk)
        except Exception:
            logger.error("Write failed for %s, removing partial file", stored_name)
            await self.delete(stored_name)
            raise

        logger.info("Stored %s (%d bytes)", stored_name, os.path.getsize(path))
        return stored_name

    async def delete(self, stored_name: str) -> None:
        """Remove a stored file. A file that is already gone is not an error."""
        try:
            await aiofiles.os.remove(self.path_for(stored_name))
        except FileNotFoundError:
            pass

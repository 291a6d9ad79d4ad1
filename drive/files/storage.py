import logging, mimetypes, re, secrets, time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from drive.shared.config import settings
from drive.shared.errors import BlobIOError, NotFound, PayloadTooLarge

logger = logging.getLogger(__name__)

CHUNK = 1024 * 1024
_EXT_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")

class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...

class IncomingFile(AsyncReadable, Protocol):
    filename: Optional[str]
    content_type: Optional[str]

    async def close(self) -> None: ...

@dataclass
class StoredBlob:
    filename: str   # generated name, never the user's
    path: Path
    size: int

def safe_display_name(name: Optional[str]) -> str:
    # browsers may send a full client path; keep the basename only
    base = (name or "").replace("\\", "/").split("/")[-1].strip()
    return base or "upload.bin"

def sniff_mime(filename: str, fallback: str | None) -> str:
    guess, _ = mimetypes.guess_type(filename)
    return fallback or guess or "application/octet-stream"

class BlobStore:
    """Uploaded bytes on local disk under one root directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _new_name(self, original_name: str) -> str:
        ext = Path(original_name).suffix
        ext = ext if _EXT_RE.match(ext) else ""
        return f"file-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext.lower()}"

    def _inside_root(self, location: str | Path) -> Path:
        p = Path(location).resolve()
        if p != self.root and self.root not in p.parents:
            raise NotFound("File not found on disk")
        return p

    async def store(self, source: AsyncReadable, original_name: str, size_limit: int) -> StoredBlob:
        """
        Copy `source` to a freshly named file under the root, chunk by chunk.
        Raises PayloadTooLarge as soon as the running size passes `size_limit`.
        On any failure, cancellation included, the partial file is removed.
        """
        for _ in range(5):
            name = self._new_name(original_name)
            target = self.root / name
            try:
                out = target.open("xb")
                break
            except FileExistsError:
                continue
            except OSError as e:
                raise BlobIOError() from e
        else:
            raise BlobIOError("Could not allocate a storage name")

        size = 0
        try:
            with out:
                while True:
                    chunk = await source.read(CHUNK)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > size_limit:
                        raise PayloadTooLarge(f"File too large. Max {size_limit} bytes")
                    out.write(chunk)
        except OSError as e:
            self._discard(target)
            raise BlobIOError() from e
        except BaseException:
            self._discard(target)
            raise
        return StoredBlob(filename=name, path=target, size=size)

    def read(self, location: str | Path) -> Path:
        """Path to an existing blob; NotFound when the metadata outlived the bytes."""
        p = self._inside_root(location)
        if not p.is_file():
            raise NotFound("File not found on disk")
        return p

    def delete(self, location: str | Path) -> bool:
        p = self._inside_root(location)
        try:
            p.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise BlobIOError() from e

    def _discard(self, target: Path) -> None:
        try:
            target.unlink(missing_ok=True)
        except OSError:
            logger.warning("could not remove partial upload %s", target, exc_info=True)

_store: BlobStore | None = None

# FastAPI dep
def get_blob_store() -> BlobStore:
    global _store
    if _store is None:
        _store = BlobStore(settings.UPLOAD_DIR)
    return _store

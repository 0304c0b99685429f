"""
Artifact Store — flat, write-once storage for rendered PDFs.

One artifact per file under a base directory. Every edit/regeneration writes a
new file name; nothing is overwritten or deleted here.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from synthesis.errors import ArtifactNotFoundError, InvalidFileNameError, StoreError

log = logging.getLogger(__name__)

# ─── Config ────────────────────────────────────────────────────────────────────

PDF_UPLOADS_DIR = os.getenv("PDF_UPLOADS_DIR", "./uploads/pdfs")
FILES_URL_PREFIX = os.getenv("FILES_URL_PREFIX", "/api/files")


def sanitize_file_name(file_name: str) -> str:
    """
    Reduce a requested name to its base component.

    Raises:
        InvalidFileNameError: empty, '.', '..' or hidden names, or NUL bytes
    """
    if not file_name or "\x00" in file_name:
        raise InvalidFileNameError("File name is empty")
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if not base or base in (".", "..") or base.startswith("."):
        raise InvalidFileNameError(f"Invalid file name: {file_name!r}")
    return base


@dataclass(frozen=True)
class StoredArtifact:
    file_name: str
    path: Path
    size: int
    download_url: str


class ArtifactStore:
    """Filesystem artifact store rooted at base_dir."""

    def __init__(self, base_dir: Union[str, Path] = PDF_UPLOADS_DIR, url_prefix: str = FILES_URL_PREFIX):
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def ensure_dir(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, file_name: str) -> Path:
        return self.base_dir / sanitize_file_name(file_name)

    def download_url(self, file_name: str) -> str:
        return f"{self.url_prefix}/{sanitize_file_name(file_name)}"

    def store(self, data: bytes, file_name: str) -> StoredArtifact:
        """
        Write bytes under a fresh name.

        Raises:
            InvalidFileNameError: name fails sanitisation
            StoreError: the name is taken or the write failed
        """
        path = self._path(file_name)
        try:
            self.ensure_dir()
            # "xb": exclusive create, an existing artifact is never replaced
            with open(path, "xb") as fh:
                fh.write(data)
        except FileExistsError as e:
            raise StoreError(f"Artifact '{path.name}' already exists") from e
        except OSError as e:
            raise StoreError(f"Failed to write artifact '{path.name}': {e}") from e

        size = path.stat().st_size
        log.info(f"[STORE] Wrote {path.name} ({size} bytes)")
        return StoredArtifact(
            file_name=path.name,
            path=path,
            size=size,
            download_url=self.download_url(path.name),
        )

    def exists(self, file_name: str) -> bool:
        try:
            return self._path(file_name).is_file()
        except InvalidFileNameError:
            return False

    def size(self, file_name: str) -> Optional[int]:
        path = self._path(file_name)
        return path.stat().st_size if path.is_file() else None

    def retrieve(self, file_name: str) -> bytes:
        """
        Read an artifact back.

        Raises:
            ArtifactNotFoundError: invalid name or no such file
        """
        try:
            path = self._path(file_name)
        except InvalidFileNameError as e:
            raise ArtifactNotFoundError(str(e)) from e
        if not path.is_file():
            raise ArtifactNotFoundError(f"Artifact '{path.name}' not found")
        return path.read_bytes()

"""
Files Router — /api/files

Serves stored PDF artifacts by file name.
"""

import logging
from io import BytesIO

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from routers.dependencies import get_artifact_store
from synthesis.artifact_store import ArtifactStore, sanitize_file_name
from synthesis.errors import ArtifactNotFoundError

router = APIRouter(prefix="/api/files", tags=["files"])

log = logging.getLogger(__name__)


@router.get("/{filename}")
def download_file(filename: str, store: ArtifactStore = Depends(get_artifact_store)):
    """Return the PDF bytes as an attachment; 404 when missing or the name is invalid."""
    try:
        data = store.retrieve(filename)
    except ArtifactNotFoundError:
        log.info(f"[FILES] Not found: {filename!r}")
        raise HTTPException(status_code=404, detail="File not found")

    name = sanitize_file_name(filename)
    return StreamingResponse(
        BytesIO(data),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{name}"',
            "Content-Length": str(len(data)),
        },
    )

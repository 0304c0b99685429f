"""
Shared FastAPI dependencies.

Authentication happens upstream; the auth layer forwards the user id in X-User-Id.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request

from synthesis.artifact_store import ArtifactStore


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller's user id; 400 when the auth layer did not supply one."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=400, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_optional_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def get_artifact_store(request: Request) -> ArtifactStore:
    """The store created by the app lifespan."""
    store = getattr(request.app.state, "artifact_store", None)
    if store is None:
        store = ArtifactStore()
        request.app.state.artifact_store = store
    return store

"""
SBP Studio API — Main Application
FastAPI application for School-Based Project synthesis.
Fulfils agent chat turns into PDF projects, serves artifacts, and exposes the template catalog.
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database.database import engine, Base, SessionLocal
from routers import chat, files, templates, projects
from synthesis.artifact_store import ArtifactStore
from synthesis.templates import TemplateCatalog

log = logging.getLogger(__name__)


def _seed_defaults():
    """Insert the built-in templates if they don't exist."""
    db = SessionLocal()
    try:
        TemplateCatalog(db).seed_defaults()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables + seed templates + artifact directory."""
    Base.metadata.create_all(bind=engine)
    _seed_defaults()
    store = ArtifactStore()
    store.ensure_dir()
    app.state.artifact_store = store
    log.info(f"[STARTUP] Artifacts stored under {store.base_dir.resolve()}")
    yield


app = FastAPI(
    title="SBP Studio API",
    description="School-Based Project synthesis: chat-turn fulfilment, PDF artifacts, templates and credits",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(chat.router)               # /chat/fulfil, /chat/guardrail
app.include_router(files.router)              # /api/files/{filename}
app.include_router(templates.router)          # /templates
app.include_router(projects.router)           # /projects


@app.get("/")
def root():
    return {
        "name": "SBP Studio API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "fulfil": "/chat/fulfil",
            "files": "/api/files/{filename}",
            "templates": "/templates",
            "projects": "/projects",
        },
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "sbp-studio-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)

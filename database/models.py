"""
SQLAlchemy models for the project fulfilment layer
User (credit ledger) → Project ← Template

The credit balance on User is the SOURCE OF TRUTH for billing.
Project rows point at the latest rendered artifact; older artifacts stay on disk.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from database.database import Base


def _new_id(prefix: str):
    def _make() -> str:
        return f"{prefix}_{uuid.uuid4().hex[:16]}"
    return _make


# ==========================================
# USERS + CREDIT LEDGER
# ==========================================

class User(Base):
    """
    Account owning projects and a prepaid credit balance.
    Authentication lives elsewhere; this row only carries what billing needs.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_new_id("usr"))
    email = Column(String(255), unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=True)
    credits = Column(Integer, default=0, nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    projects = relationship("Project", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id='{self.id}', credits={self.credits})>"


# ==========================================
# TEMPLATES
# ==========================================

class Template(Base):
    """
    Visual style for project PDFs.
    color_scheme / structure hold the StyleSheet JSON; user_id is NULL for system templates.
    """
    __tablename__ = "templates"

    id = Column(String(64), primary_key=True, default=_new_id("tpl"))
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    preview_color = Column(String(16), nullable=True)
    color_scheme = Column(JSON, nullable=False)
    structure = Column(JSON, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False, server_default="0")
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Template(id='{self.id}', name='{self.name}', usage_count={self.usage_count})>"


# ==========================================
# PROJECTS
# ==========================================

class Project(Base):
    """
    A generated School-Based Project.
    content is the six-stage rubric JSON; file_name points at the current PDF artifact.
    """
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True, default=_new_id("proj"))
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    subject = Column(String(255), nullable=True, index=True)
    level = Column(String(32), nullable=True)
    author = Column(String(255), nullable=True)
    school = Column(String(255), nullable=True)
    candidate_number = Column(String(64), nullable=True)
    form_grade = Column(String(64), nullable=True)

    file_name = Column(String(255), nullable=False)
    download_url = Column(String(512), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)

    template_id = Column(String(64), nullable=True)  # built-in templates may have no DB row
    content = Column(JSON, nullable=False)

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    user = relationship("User", back_populates="projects")

    def __repr__(self):
        return f"<Project(id='{self.id}', title='{self.title}', file='{self.file_name}')>"


# ==========================================
# IDEMPOTENCY
# ==========================================

class FulfillmentRecord(Base):
    """
    One row per fulfilled credit-bearing tool call.
    A replayed tool_call_id is recognised here and never debited twice.
    """
    __tablename__ = "fulfillment_records"

    id = Column(Integer, primary_key=True, index=True)
    tool_call_id = Column(String(128), unique=True, nullable=False, index=True)
    tool_name = Column(String(64), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(String(64), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    file_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

"""
Pydantic schemas for request/response validation
Separate from SQLAlchemy models for clean API contracts
"""

from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime


# ==========================================
# PROJECT SCHEMAS
# ==========================================

class ProjectSummary(BaseModel):
    """Schema for one entry of the project picker"""
    id: str
    title: str
    subject: Optional[str] = None
    level: Optional[str] = None
    author: Optional[str] = None
    file_name: str
    download_url: str
    file_size: int = Field(default=0, ge=0)
    template_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class ProjectListResponse(BaseModel):
    """Schema for the project picker response"""
    projects: List[ProjectSummary]
    count: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==========================================
# GUARDRAIL SCHEMAS
# ==========================================

class GuardrailRequest(BaseModel):
    """Schema for a guardrail check on one user message"""
    message: str = Field(..., description="Latest user message")


class GuardrailResponse(BaseModel):
    """Schema for a guardrail verdict"""
    passed: bool
    block_reason: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

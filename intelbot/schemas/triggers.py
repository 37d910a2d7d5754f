"""Pydantic schemas for the manual trigger endpoints."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field

# GitHub owner/repository name characters
_NAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class TriggerRequest(BaseModel):
    """Repository to analyze."""

    owner: str = Field(..., min_length=1, max_length=100, pattern=_NAME_PATTERN, description="Repository owner login.")
    repo: str = Field(..., min_length=1, max_length=100, pattern=_NAME_PATTERN, description="Repository name.")


class TriggerResponse(BaseModel):
    success: bool = Field(..., description="Whether the analysis ran to completion.")
    message: str = Field(..., description="Human-readable outcome.")
    result: Dict[str, Any] = Field(default_factory=dict, description="Analysis payload from the integration.")

"""Pydantic schemas for status and webhook responses."""

from __future__ import annotations

from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field


class ServiceHealth(BaseModel):
    """One integration's probe result; extra probe detail is passed through."""

    model_config = ConfigDict(extra="allow")

    status: str = Field(..., description="healthy, error, unavailable or unknown.")
    error: str | None = Field(default=None, description="Failure reason when not healthy.")


class HealthStatusResponse(BaseModel):
    overall: Literal["healthy", "degraded"] = Field(..., description="degraded if any service reports error.")
    services: Dict[str, ServiceHealth] = Field(default_factory=dict)
    timestamp: str


class TaskStatusResponse(BaseModel):
    is_running: bool
    task_count: int
    tasks: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class WebhookResponse(BaseModel):
    message: str
    outcome: Literal["processed", "ignored"]

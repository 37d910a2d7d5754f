from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check.

    Reports whether the process is up and the scheduler is running; it does
    not call any upstream (see ``/api/status`` for that).
    """

    services = getattr(request.app.state, "services", None)
    return {
        "status": "ok",
        "scheduler_running": bool(services and services.runner.is_running),
    }

"""
GenBI Telemetry Endpoint.

Exposes product telemetry and tracker load for monitoring and debugging.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from genbi.adaptors.schemas import TaskHandle
from genbi.deps import ServiceContainer, get_container, require_telemetry

router = APIRouter(prefix="/api/v1", tags=["telemetry"], dependencies=[require_telemetry])


@router.get("/telemetry")
def get_telemetry(container: Annotated[ServiceContainer, Depends(get_container)]) -> dict:
    """
    Get current telemetry summary.

    Example response:
    ```json
    {
      "uptime_seconds": 3600.5,
      "collected_at": "2026-10-19T09:00:00+00:00",
      "events": {
        "home_answer_breakdown": {"success_count": 12, "failure_count": 1, "last_sent": "..."}
      },
      "service_failures": {"AI": 1},
      "trackers": {"breakdown": 2, "chart": 0}
    }
    ```
    """
    summary = container.telemetry.get_summary()
    summary["trackers"] = {name: len(t.get_tasks()) for name, t in container.trackers.items()}
    return summary


@router.get("/telemetry/trackers", response_model=dict[str, list[TaskHandle]])
def get_tracked_tasks(container: Annotated[ServiceContainer, Depends(get_container)]):
    """Remote tasks each tracker is currently waiting on."""
    return {name: t.handles() for name, t in container.trackers.items()}

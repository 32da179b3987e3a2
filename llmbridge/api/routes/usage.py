"""Usage endpoint for realtime counters."""

from typing import Any

from fastapi import APIRouter

from ...core.registry import get_gate
from ...usage_metrics import build_usage_snapshot

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("")
async def get_usage() -> dict[str, Any]:
    """Return realtime usage counters and the enabled providers."""
    return build_usage_snapshot(get_gate().providers.enabled_ids())

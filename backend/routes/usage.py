"""Session API usage: totals by service and model, plus the latest calls."""

from fastapi import APIRouter, Depends, Query

from backend.deps import get_ledger
from cadence.usage.ledger import UsageLedger

router = APIRouter()


@router.get("/usage/summary")
async def usage_summary(
    limit: int = Query(default=100, ge=0, le=1000),
    ledger: UsageLedger = Depends(get_ledger),
):
    return {
        "success": True,
        "summary": ledger.summary().model_dump(mode="json"),
        "recent": [entry.model_dump(mode="json") for entry in ledger.recent(limit)],
    }

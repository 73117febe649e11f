import time
from datetime import datetime, timezone

from fastapi import APIRouter

from forum.models import Health

router = APIRouter(tags=["utils"])

STARTED_AT = time.monotonic()


@router.get("/health", response_model=Health)
def health_check() -> Health:
    return Health(
        status="OK",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - STARTED_AT, 3),
    )

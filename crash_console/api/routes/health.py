from fastapi import APIRouter, Request

from crash_console.utils.time import to_iso

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    broadcast = getattr(request.app.state, "broadcast", None)
    if broadcast is None:
        return {"status": "starting"}

    last_error = broadcast.last_error
    return {
        "status": "degraded" if last_error else "ok",
        "last_crash_check": to_iso(broadcast.snapshot.last_update_time),
        "last_error": last_error.message if last_error else None,
    }

"""
Market crash routes - global status, branch workflow, notifications.
"""

from dataclasses import asdict
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from crash_console.domain.models import (
    BranchCrashState,
    BranchSummary,
    CrashTimerState,
    GlobalCrashSnapshot,
    Notification,
)
from crash_console.domain.services.crash_workflow import BranchCrashWorkflow
from crash_console.realtime.crash_broadcast import GlobalCrashBroadcast
from crash_console.services.notification_service import NotificationFeed
from crash_console.utils.time import to_iso

router = APIRouter()


class SelectBranchRequest(BaseModel):
    branch_id: Optional[str] = None


class TriggerRequest(BaseModel):
    intensity_percent: int
    duration_minutes: int


class CancelRequest(BaseModel):
    reason: Literal["cancel", "escape", "backdrop"] = "cancel"


def _workflow(request: Request) -> BranchCrashWorkflow:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(status_code=503, detail="Market crash workflow not initialized")
    return workflow


def _broadcast(request: Request) -> GlobalCrashBroadcast:
    broadcast = getattr(request.app.state, "broadcast", None)
    if broadcast is None:
        raise HTTPException(status_code=503, detail="Market crash broadcast not initialized")
    return broadcast


def _summary_to_dict(branch: BranchSummary) -> Dict[str, Any]:
    return {"branch_id": branch.branch_id, "name": branch.name, "active": branch.active}


def _snapshot_to_dict(snapshot: GlobalCrashSnapshot) -> Dict[str, Any]:
    return {
        "is_any_branch_crashing": snapshot.is_any_branch_crashing,
        "crashing_branches": [_summary_to_dict(b) for b in snapshot.crashing_branches],
        "last_update_time": to_iso(snapshot.last_update_time),
    }


def _branch_to_dict(branch: Optional[BranchCrashState]) -> Optional[Dict[str, Any]]:
    if branch is None:
        return None
    return {
        "branch_id": branch.branch_id,
        "name": branch.name,
        "active": branch.active,
        "start_time": to_iso(branch.start_time),
        "end_time": to_iso(branch.effective_end_time),
        "duration_minutes": branch.duration_minutes,
        "intensity_percent": branch.intensity_percent,
    }


def _timer_to_dict(timer: Optional[CrashTimerState]) -> Optional[Dict[str, Any]]:
    if timer is None:
        return None
    return {"remaining_seconds": timer.remaining_seconds, "expired": timer.expired}


def _notification_to_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "title": notification.title,
        "description": notification.description,
        "variant": notification.variant.value,
        "created_at": to_iso(notification.created_at),
    }


def _workflow_to_dict(workflow: BranchCrashWorkflow) -> Dict[str, Any]:
    gate = workflow.gate
    intent = gate.intent
    view = workflow.status_view()
    return {
        "selected_branch_id": workflow.selected_branch_id,
        "loading": workflow.loading,
        "branch": _branch_to_dict(workflow.branch),
        "timer": _timer_to_dict(workflow.timer),
        "status": {**asdict(view), "status": view.status.value},
        "history": [
            {**asdict(entry), "started_at": to_iso(entry.started_at)}
            for entry in workflow.history()
        ],
        "confirmation": {
            "state": gate.state.value,
            "kind": intent.kind.value if intent else None,
            "title": intent.title if intent else None,
            "message": intent.message if intent else None,
            "confirm_text": intent.confirm_text if intent else None,
            "cancel_text": intent.cancel_text if intent else None,
        },
    }


@router.get("/status")
async def market_crash_status(request: Request):
    """Global crash indicator data."""
    return _snapshot_to_dict(_broadcast(request).snapshot)


@router.get("/options")
async def market_crash_options(request: Request):
    options = _workflow(request).options
    return {
        "intensities": [asdict(o) for o in options.intensities],
        "durations": [asdict(o) for o in options.durations],
        "default_intensity": options.default_intensity,
        "default_duration": options.default_duration,
    }


@router.get("/branches")
async def list_branches(request: Request):
    branches = await _workflow(request).load_branches()
    return {"branches": [_summary_to_dict(b) for b in branches]}


@router.get("/branch")
async def current_branch(request: Request):
    return _workflow_to_dict(_workflow(request))


@router.post("/select")
async def select_branch(payload: SelectBranchRequest, request: Request):
    workflow = _workflow(request)
    await workflow.select_branch(payload.branch_id)
    return _workflow_to_dict(workflow)


@router.post("/trigger")
async def request_trigger(payload: TriggerRequest, request: Request):
    workflow = _workflow(request)
    opened = workflow.request_trigger(payload.intensity_percent, payload.duration_minutes)
    return {"opened": opened, **_workflow_to_dict(workflow)}


@router.post("/end")
async def request_end(request: Request):
    workflow = _workflow(request)
    opened = workflow.request_end()
    return {"opened": opened, **_workflow_to_dict(workflow)}


@router.post("/confirm")
async def confirm(request: Request):
    workflow = _workflow(request)
    executed = await workflow.confirm()
    return {"executed": executed, **_workflow_to_dict(workflow)}


@router.post("/cancel")
async def cancel(payload: CancelRequest, request: Request):
    workflow = _workflow(request)
    if payload.reason == "escape":
        closed = workflow.handle_key("Escape")
    elif payload.reason == "backdrop":
        closed = workflow.backdrop_click()
    else:
        closed = workflow.cancel()
    return {"closed": closed, **_workflow_to_dict(workflow)}


@router.get("/notifications")
async def notifications(request: Request, limit: int = Query(20, ge=1, le=200)):
    feed: Optional[NotificationFeed] = getattr(request.app.state, "notification_feed", None)
    if feed is None:
        return {"notifications": []}
    return {"notifications": [_notification_to_dict(n) for n in feed.recent(limit)]}

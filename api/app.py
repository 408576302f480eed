from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from tracker import (
    FocusTimer,
    SessionManager,
    StreakCalculator,
    TrackerError,
    Workspace,
    create_habit,
    daily_summaries,
    delete_habit,
    get_day_state,
    get_habit,
    habit_stats,
    list_habits,
    load_settings,
    load_summary,
    mark_day,
    open_workspace,
    overall_stats,
    parse_day,
    pomodoro_stats,
    query_day,
    query_month,
    query_range,
    rebuild_statistics,
    refresh_summary,
    reset_checklist,
    setup_logging,
    toggle_checklist_item,
    update_habit,
)
from tracker.errors import HabitNotFound
from tracker.models import SESSION_STATUSES

logger = logging.getLogger(__name__)

# ── Engine wiring ─────────────────────────────────────────────

_engine: dict[str, Any] = {}


def get_workspace() -> Workspace:
    """The workspace under TRACKER_ROOT, opened once per process."""
    if "ws" not in _engine:
        _engine["ws"] = open_workspace()
    return _engine["ws"]


def get_manager(ws: Workspace = Depends(get_workspace)) -> SessionManager:
    if "manager" not in _engine:
        manager = SessionManager(ws)
        FocusTimer(manager).resume()
        _engine["manager"] = manager
    return _engine["manager"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    manager = _engine.get("manager")
    if manager is not None and manager.timer is not None:
        manager.timer.shutdown()


app = FastAPI(title="Habit Focus Tracker", version="0.1.0", lifespan=lifespan)

@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status, content={"error": exc.code, "detail": str(exc)})


def _day(value: Any, field: str = "date") -> date:
    try:
        return parse_day(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid {field}: {value}")


def _int_field(payload: dict[str, Any], *names: str) -> int | None:
    for name in names:
        if payload.get(name) is not None:
            try:
                return int(payload[name])
            except (TypeError, ValueError):
                raise HTTPException(status_code=400, detail=f"Invalid {name}: {payload[name]}")
    return None


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


router = APIRouter(prefix="/api")


# ── Habits ────────────────────────────────────────────────────

@router.get("/habits")
def api_list_habits(ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    return {"habits": [h.to_dict() for h in list_habits(ws)]}


@router.post("/habits")
def api_create_habit(payload: dict[str, Any] = Body(...), ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    """Create a habit template."""
    habit = create_habit(
        ws,
        name=str(payload.get("name", "")),
        checklist=payload.get("checklist", []),
        required_items=payload.get("requiredItems", payload.get("required_items", 1)),
        start_date=payload.get("startDate") or payload.get("start_date"),
        description=str(payload.get("description", "") or ""),
    )
    return {"ok": True, "habit": habit.to_dict()}


@router.get("/habits/{habit_id}")
def api_get_habit(habit_id: int, ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    habit = get_habit(ws, habit_id)
    if habit is None:
        raise HabitNotFound(habit_id)
    return habit.to_dict()


@router.patch("/habits/{habit_id}")
def api_update_habit(habit_id: int, payload: dict[str, Any] = Body(...), ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    if not payload:
        raise HTTPException(status_code=400, detail="Missing updates")
    habit = update_habit(ws, habit_id, payload)
    return {"ok": True, "habit": habit.to_dict()}


@router.delete("/habits/{habit_id}")
def api_delete_habit(habit_id: int, ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    delete_habit(ws, habit_id)
    return {"ok": True, "habitId": habit_id}


# ── Checklist ─────────────────────────────────────────────────

@router.get("/habits/{habit_id}/checklist")
def api_get_checklist(
    habit_id: int,
    day: date | None = Query(None, alias="date"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    return get_day_state(ws, habit_id, day).to_dict()


@router.post("/habits/{habit_id}/checklist/{item_id}/toggle")
def api_toggle_item(
    habit_id: int,
    item_id: str,
    payload: dict[str, Any] = Body(default={}),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    """Toggle one checklist item for a day (default today)."""
    day = _day(payload["date"]) if payload.get("date") else None
    return toggle_checklist_item(ws, habit_id, item_id, day).to_dict()


@router.post("/habits/{habit_id}/checklist/reset")
def api_reset_checklist(
    habit_id: int,
    payload: dict[str, Any] = Body(default={}),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    day = _day(payload["date"]) if payload.get("date") else None
    return reset_checklist(ws, habit_id, day).to_dict()


@router.post("/calendar/complete")
def api_mark_day(payload: dict[str, Any] = Body(...), ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    """Record a completion verdict for (habit, date) directly."""
    habit_id = _int_field(payload, "habitId", "habit_id")
    if habit_id is None:
        raise HTTPException(status_code=400, detail="Missing habitId")
    day = _day(payload.get("date")) if payload.get("date") else ws.today()
    completed = payload.get("completed", True)
    if not isinstance(completed, bool):
        raise HTTPException(status_code=400, detail=f"Invalid completed: {completed!r}")
    event = mark_day(ws, habit_id, day, completed)
    return event.to_dict()


# ── Focus sessions ────────────────────────────────────────────

@router.post("/focus/start")
def api_focus_start(payload: dict[str, Any] = Body(default={}), manager: SessionManager = Depends(get_manager)) -> dict[str, Any]:
    """Start a focus session."""
    habit_id = _int_field(payload, "habitId", "habit_id")
    minutes = payload.get("targetMinutes", payload.get("target_minutes"))
    session = manager.start(habit_id=habit_id, target_minutes=minutes)
    return {"ok": True, "session": session.to_dict()}


@router.patch("/focus/{session_id}")
def api_focus_progress(
    session_id: int,
    payload: dict[str, Any] = Body(...),
    manager: SessionManager = Depends(get_manager),
) -> dict[str, Any]:
    """Report elapsed seconds for an active session."""
    elapsed = _int_field(payload, "elapsedSeconds", "duration")
    if elapsed is None:
        raise HTTPException(status_code=400, detail="Missing elapsedSeconds")
    return {"ok": True, "session": manager.record_progress(session_id, elapsed).to_dict()}


@router.post("/focus/{session_id}/complete")
def api_focus_complete(session_id: int, manager: SessionManager = Depends(get_manager)) -> dict[str, Any]:
    return {"ok": True, "session": manager.complete(session_id).to_dict()}


@router.post("/focus/{session_id}/cancel")
def api_focus_cancel(session_id: int, manager: SessionManager = Depends(get_manager)) -> dict[str, Any]:
    return {"ok": True, "session": manager.cancel(session_id).to_dict()}


@router.get("/focus/active")
def api_focus_active(manager: SessionManager = Depends(get_manager)) -> dict[str, Any]:
    session = manager.get_active()
    return {"session": session.to_dict() if session else None}


@router.get("/focus")
def api_focus_list(
    day: date | None = Query(None, alias="date"),
    habit_id: int | None = Query(None, alias="habitId"),
    status_filter: str | None = Query(None, alias="status"),
    manager: SessionManager = Depends(get_manager),
) -> dict[str, Any]:
    if status_filter is not None and status_filter not in SESSION_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status_filter}")
    sessions = manager.list_sessions(day=day, habit_id=habit_id, status=status_filter)
    return {"sessions": [s.to_dict() for s in sessions]}


@router.get("/focus/{session_id}")
def api_focus_get(session_id: int, manager: SessionManager = Depends(get_manager)) -> dict[str, Any]:
    return manager.get_session(session_id).to_dict()


# ── Calendar ──────────────────────────────────────────────────

@router.get("/calendar")
def api_calendar_month(
    year: int | None = None,
    month: int | None = Query(None, ge=1, le=12),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    today = ws.today()
    return query_month(ws, year or today.year, month or today.month).to_dict()


@router.get("/calendar/range")
def api_calendar_range(
    start: date = Query(..., alias="startDate"),
    end: date = Query(..., alias="endDate"),
    habit_id: int | None = Query(None, alias="habitId"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    if end < start:
        raise HTTPException(status_code=400, detail="endDate must not be before startDate")
    return query_range(ws, start, end, habit_id=habit_id).to_dict()


@router.get("/calendar/date/{day}")
def api_calendar_day(day: str, ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    return query_day(ws, _day(day))


# ── Statistics ────────────────────────────────────────────────

@router.get("/stats")
def api_stats(
    start: date | None = Query(None, alias="startDate"),
    end: date | None = Query(None, alias="endDate"),
    habit_id: int | None = Query(None, alias="habitId"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    return overall_stats(ws, start, end, habit_id)


@router.get("/stats/habit/{habit_id}")
def api_stats_habit(
    habit_id: int,
    start: date | None = Query(None, alias="startDate"),
    end: date | None = Query(None, alias="endDate"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    return habit_stats(ws, habit_id, start, end)


@router.get("/stats/daily")
def api_stats_daily(
    start: date | None = Query(None, alias="startDate"),
    end: date | None = Query(None, alias="endDate"),
    habit_id: int | None = Query(None, alias="habitId"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    return daily_summaries(ws, start, end, habit_id)


@router.get("/stats/pomodoro")
def api_stats_pomodoro(
    start: date | None = Query(None, alias="startDate"),
    end: date | None = Query(None, alias="endDate"),
    habit_id: int | None = Query(None, alias="habitId"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    return pomodoro_stats(ws, start, end, habit_id)


@router.post("/stats/rebuild")
def api_stats_rebuild(payload: dict[str, Any] = Body(default={}), ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    """Recompute statistics from the event log."""
    rows = rebuild_statistics(ws, _int_field(payload, "habitId", "habit_id"))
    return {"ok": True, "rows": rows}


@router.get("/summary")
def api_summary(ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    """Cached dashboard summary."""
    return load_summary(ws) or refresh_summary(ws)


@router.post("/summary/refresh")
def api_summary_refresh(ws: Workspace = Depends(get_workspace)) -> dict[str, Any]:
    return refresh_summary(ws)


# ── Streaks & progress ────────────────────────────────────────

@router.get("/streak")
def api_streak(
    day: date | None = Query(None, alias="date"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    """Current streak ending at `date` (default yesterday) and the longest one."""
    calc = StreakCalculator(ws)
    return {
        "currentStreak": calc.current_streak(day),
        "longestStreak": calc.longest_streak(end=day),
    }


@router.get("/habits/{habit_id}/week")
def api_habit_week(
    habit_id: int,
    day: date | None = Query(None, alias="date"),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    window = StreakCalculator(ws).weekly_window(day, habit_id)
    return {"habitId": habit_id, "days": [e.to_dict() for e in window]}


@router.get("/progress")
def api_progress(
    day: date | None = Query(None, alias="date"),
    days: int = Query(7, ge=1, le=366),
    ws: Workspace = Depends(get_workspace),
) -> dict[str, Any]:
    window = StreakCalculator(ws).progress_window(day, days)
    return {"days": [e.to_dict() for e in window]}


app.include_router(router)


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)
    host = os.environ.get("TRACKER_HOST", "127.0.0.1")
    port = int(os.environ.get("TRACKER_PORT", "8000"))
    logger.info("Serving tracker API on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()

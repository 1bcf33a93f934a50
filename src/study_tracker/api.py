from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictFloat, StrictInt

from study_tracker import service
from study_tracker.achievements import achievements_with_status
from study_tracker.config import Settings, load_settings
from study_tracker.db import Database, User
from study_tracker.db_constants import APP_CONFIG_DEFAULTS
from study_tracker.errors import TrackerError
from study_tracker.leaderboard import normalize_timeframe, rank_users
from study_tracker.lifecycle import SessionLifecycleManager
from study_tracker.logging_setup import setup_logging
from study_tracker.time_utils import now_utc

logger = logging.getLogger(__name__)


def _coerce_value(key: str, value: Any) -> Any:
    default = APP_CONFIG_DEFAULTS.get(key)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            return default
    return value


def _require_admin(request: Request, token: str | None) -> None:
    if not token:
        return
    if request.headers.get("x-admin-token") == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _dump(value: Any) -> Any:
    return jsonable_encoder(value)


# numeric strings are rejected rather than coerced
Seconds = StrictInt | StrictFloat


class RegisterRequest(BaseModel):
    username: str
    display_name: str | None = None
    daily_goal: Seconds | None = None


class DailyGoalRequest(BaseModel):
    daily_goal: Seconds


class SubjectRequest(BaseModel):
    name: str
    color: str | None = None
    target_time: Seconds = 0
    daily_target_time: Seconds = 0


class DailyTargetRequest(BaseModel):
    daily_target_time: Seconds


class StartSessionRequest(BaseModel):
    subject_id: int
    type: str | None = "study"
    elapsed: Seconds | None = None


class EndSessionRequest(BaseModel):
    duration: Seconds


class TagRequest(BaseModel):
    break_tag: str


class ReconcileRequest(BaseModel):
    elapsed: Seconds
    gap: Seconds


class GroupRequest(BaseModel):
    name: str


class GroupMemberRequest(BaseModel):
    user_id: int


class ConfigUpdateRequest(BaseModel):
    updates: dict[str, Any] = Field(default_factory=dict)
    actor: str = "admin"
    note: str | None = None


def build_app(
    db: Database,
    settings: Settings,
    manager: SessionLifecycleManager | None = None,
    clock: Callable[[], datetime] = now_utc,
) -> FastAPI:
    app = FastAPI(title="Study Tracker", version="1.0.0")
    manager = manager or SessionLifecycleManager(db, settings.stats_tz, clock=clock)
    tz_name = settings.stats_tz

    @app.exception_handler(TrackerError)
    async def tracker_error(request: Request, exc: TrackerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request failed path=%s detail=%s", request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    def current_user(request: Request) -> User:
        return service.authenticate(db, _bearer_token(request))

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.post("/api/register", status_code=201)
    def register(payload: RegisterRequest) -> dict[str, Any]:
        registration = service.register_user(db, payload.username, payload.display_name, clock(), payload.daily_goal)
        return {"user": _dump(registration.user), "token": registration.token}

    @app.get("/api/user")
    def get_user(request: Request) -> dict[str, Any]:
        return _dump(current_user(request))

    @app.patch("/api/user/daily-goal")
    def update_daily_goal(request: Request, payload: DailyGoalRequest) -> dict[str, Any]:
        user = current_user(request)
        return _dump(service.update_user_daily_goal(db, user.id, payload.daily_goal))

    @app.post("/api/subjects", status_code=201)
    def create_subject(request: Request, payload: SubjectRequest) -> dict[str, Any]:
        user = current_user(request)
        subject = service.create_subject(
            db,
            user.id,
            payload.name,
            clock(),
            color=payload.color,
            target_time=payload.target_time,
            daily_target_time=payload.daily_target_time,
        )
        return _dump(subject)

    @app.get("/api/subjects")
    def list_subjects(request: Request) -> list[dict[str, Any]]:
        user = current_user(request)
        return _dump(db.list_subjects(user.id))

    @app.patch("/api/subjects/{subject_id}/daily-target")
    def update_daily_target(subject_id: int, request: Request, payload: DailyTargetRequest) -> dict[str, Any]:
        user = current_user(request)
        return _dump(service.update_subject_daily_target(db, user.id, subject_id, payload.daily_target_time))

    @app.post("/api/sessions/start", status_code=201)
    def start_session(request: Request, payload: StartSessionRequest) -> dict[str, Any]:
        user = current_user(request)
        return _dump(manager.start(user.id, payload.subject_id, payload.type, payload.elapsed))

    @app.post("/api/sessions/{session_id}/end")
    def end_session(session_id: int, request: Request, payload: EndSessionRequest) -> dict[str, Any]:
        user = current_user(request)
        outcome = manager.end(user.id, session_id, payload.duration)
        aggregation = outcome.aggregation
        return {
            "session": _dump(outcome.session),
            "daily_stats": _dump(aggregation.daily_stats),
            "unlocked": [u.achievement.name for u in aggregation.unlocked],
        }

    @app.post("/api/sessions/{session_id}/tag")
    def tag_session(session_id: int, request: Request, payload: TagRequest) -> dict[str, Any]:
        user = current_user(request)
        return _dump(manager.tag(user.id, session_id, payload.break_tag))

    @app.post("/api/sessions/{session_id}/reconcile")
    def reconcile_session(session_id: int, request: Request, payload: ReconcileRequest) -> dict[str, Any]:
        user = current_user(request)
        outcome = manager.reconcile(user.id, session_id, payload.elapsed, payload.gap)
        return {
            "gap_seconds": outcome.gap_seconds,
            "classification": outcome.classification.value if outcome.classification else None,
            "ended": _dump(outcome.ended),
            "gap_session": _dump(outcome.gap_session),
            "current": _dump(outcome.current),
            "notification": _dump(outcome.notification),
        }

    @app.get("/api/sessions/active")
    def active_sessions(request: Request) -> list[dict[str, Any]]:
        user = current_user(request)
        return _dump(manager.active_sessions(user.id))

    @app.get("/api/sessions")
    def session_history(request: Request, start: str, end: str) -> list[dict[str, Any]]:
        user = current_user(request)
        return _dump(service.list_session_history(db, user.id, start, end, tz_name))

    @app.get("/api/stats/daily")
    def daily_stats(request: Request, start: str | None = None, end: str | None = None) -> list[dict[str, Any]]:
        user = current_user(request)
        return _dump(service.get_daily_stats(db, user.id, start, end))

    @app.get("/api/status")
    def status(request: Request) -> dict[str, Any]:
        user = current_user(request)
        return _dump(service.compute_status(db, user.id, clock(), tz_name))

    @app.get("/api/achievements")
    def achievements(request: Request) -> list[dict[str, Any]]:
        user = current_user(request)
        return [
            {**_dump(row.achievement), "unlocked": row.unlocked}
            for row in achievements_with_status(db, user.id)
        ]

    @app.get("/api/notifications")
    def notifications(request: Request, limit: int | None = None) -> list[dict[str, Any]]:
        user = current_user(request)
        return _dump(service.list_notifications(db, user.id, limit))

    @app.post("/api/notifications/{notification_id}/read")
    def read_notification(notification_id: int, request: Request) -> dict[str, Any]:
        user = current_user(request)
        return _dump(service.mark_notification_read(db, user.id, notification_id))

    @app.post("/api/groups", status_code=201)
    def create_group(request: Request, payload: GroupRequest) -> dict[str, Any]:
        user = current_user(request)
        return _dump(service.create_group(db, user.id, payload.name, clock()))

    @app.get("/api/groups")
    def list_groups(request: Request) -> list[dict[str, Any]]:
        user = current_user(request)
        return _dump(service.list_groups(db, user.id))

    @app.post("/api/groups/{group_id}/members", status_code=201)
    def add_member(group_id: int, request: Request, payload: GroupMemberRequest) -> dict[str, Any]:
        user = current_user(request)
        return _dump(service.add_group_member(db, user.id, group_id, payload.user_id, clock()))

    @app.get("/api/groups/{group_id}/members")
    def list_members(group_id: int, request: Request) -> list[dict[str, Any]]:
        user = current_user(request)
        return _dump(service.list_group_members(db, user.id, group_id))

    @app.get("/api/leaderboard")
    def leaderboard(request: Request, timeframe: str | None = None) -> dict[str, Any]:
        user = current_user(request)
        normalized = normalize_timeframe(timeframe)
        return {"timeframe": normalized, "leaderboard": _dump(rank_users(db, normalized, user.id))}

    @app.get("/api/admin/config")
    def admin_config(request: Request) -> dict[str, Any]:
        _require_admin(request, settings.admin_panel_token)
        return {"config": db.get_app_config(), "defaults": APP_CONFIG_DEFAULTS}

    @app.post("/api/admin/config")
    def admin_update_config(request: Request, payload: ConfigUpdateRequest) -> dict[str, Any]:
        _require_admin(request, settings.admin_panel_token)
        sanitized: dict[str, Any] = {}
        for key, value in payload.updates.items():
            if key not in APP_CONFIG_DEFAULTS:
                continue
            sanitized[key] = _coerce_value(key, value)
        cfg = db.set_app_config(sanitized, actor=payload.actor, note=payload.note)
        logger.info("config updated actor=%s keys=%s", payload.actor, ",".join(sorted(sanitized)))
        return {"ok": True, "updated_count": len(sanitized), "config": cfg}

    @app.get("/api/admin/audit")
    def admin_audit(request: Request, limit: int = 100) -> dict[str, Any]:
        _require_admin(request, settings.admin_panel_token)
        return {"rows": db.list_admin_audit(limit=limit)}

    return app


def run_api() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    app = build_app(db, settings)
    logger.info("api starting host=%s port=%s db=%s", settings.api_host, settings.api_port, settings.database_path)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

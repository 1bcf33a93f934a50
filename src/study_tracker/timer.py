"""Client-side session timer.

`SessionTimer` keeps the local tick loop and talks to the server through a
`TimerBackend`. The server never sees pause/resume: a pause that outlives the
break threshold is promoted to a break session, and absence gaps are submitted
for reconciliation when the page becomes visible again.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

import httpx

from study_tracker.db import Session
from study_tracker.db_constants import BREAK_THRESHOLD_SECONDS
from study_tracker.errors import InvalidState, NotFound, error_for_status
from study_tracker.lifecycle import SessionLifecycleManager
from study_tracker.session_types import SessionType

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    BREAK = "break"
    SLEEP = "sleep"


_STATE_FOR_TYPE = {
    SessionType.STUDY: TimerState.RUNNING,
    SessionType.BREAK: TimerState.BREAK,
    SessionType.SLEEP: TimerState.SLEEP,
}


class CancelHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> CancelHandle: ...
    def every(self, interval: float, callback: Callable[[], Any]) -> CancelHandle: ...


class _Repeating:
    def __init__(self, scheduler: AsyncioScheduler, interval: float, callback: Callable[[], Any]) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False
        self._arm()

    def _arm(self) -> None:
        self._handle = self._scheduler.loop.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._arm()
        self._scheduler._run(self._callback)

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()


class AsyncioScheduler:
    """Single-threaded scheduler on the running event loop.

    Callbacks may be plain functions or return a coroutine; coroutines are
    wrapped in tasks that the scheduler keeps alive until they finish.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.loop = loop or asyncio.get_running_loop()
        self._tasks: set[asyncio.Task[Any]] = set()

    def _run(self, callback: Callable[[], Any]) -> None:
        result = callback()
        if asyncio.iscoroutine(result):
            task = self.loop.create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> CancelHandle:
        return self.loop.call_later(delay, self._run, callback)

    def every(self, interval: float, callback: Callable[[], Any]) -> CancelHandle:
        return _Repeating(self, interval, callback)


@dataclass(frozen=True)
class GapResult:
    classification: SessionType | None
    current: Session


class TimerBackend(Protocol):
    async def start_session(self, subject_id: int, session_type: SessionType, elapsed: int | None) -> Session: ...
    async def end_session(self, session_id: int, duration: int) -> Session: ...
    async def tag_break(self, session_id: int, tag: str) -> Session: ...
    async def reconcile(self, session_id: int, elapsed: int, gap: int) -> GapResult: ...
    async def active_session(self) -> Session | None: ...


class LocalBackend:
    """Calls the lifecycle manager in-process, off the event loop."""

    def __init__(self, manager: SessionLifecycleManager, user_id: int) -> None:
        self.manager = manager
        self.user_id = user_id

    async def start_session(self, subject_id: int, session_type: SessionType, elapsed: int | None) -> Session:
        return await asyncio.to_thread(self.manager.start, self.user_id, subject_id, session_type, elapsed)

    async def end_session(self, session_id: int, duration: int) -> Session:
        outcome = await asyncio.to_thread(self.manager.end, self.user_id, session_id, duration)
        return outcome.session

    async def tag_break(self, session_id: int, tag: str) -> Session:
        return await asyncio.to_thread(self.manager.tag, self.user_id, session_id, tag)

    async def reconcile(self, session_id: int, elapsed: int, gap: int) -> GapResult:
        outcome = await asyncio.to_thread(self.manager.reconcile, self.user_id, session_id, elapsed, gap)
        return GapResult(outcome.classification, outcome.current)

    async def active_session(self) -> Session | None:
        sessions = await asyncio.to_thread(self.manager.active_sessions, self.user_id)
        return sessions[0] if sessions else None


def session_from_payload(data: dict[str, Any]) -> Session:
    end_time = data.get("end_time")
    last_sync = data.get("last_sync_time")
    return Session(
        id=int(data["id"]),
        user_id=int(data["user_id"]),
        subject_id=int(data["subject_id"]),
        type=SessionType(data["type"]),
        start_time=datetime.fromisoformat(data["start_time"]),
        end_time=datetime.fromisoformat(end_time) if end_time else None,
        duration=int(data["duration"]) if data.get("duration") is not None else None,
        break_tag=data.get("break_tag"),
        is_active=bool(data["is_active"]),
        last_sync_time=datetime.fromisoformat(last_sync) if last_sync else None,
    )


class HttpBackend:
    """Talks to the HTTP API with a bearer token."""

    def __init__(self, base_url: str, token: str, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {token}"}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        response = await self._client.request(method, path, json=payload, headers=self._headers)
        if response.status_code >= 400:
            try:
                detail = str(response.json().get("detail", response.text))
            except ValueError:
                detail = response.text
            raise error_for_status(response.status_code, detail)
        return response.json()

    async def start_session(self, subject_id: int, session_type: SessionType, elapsed: int | None) -> Session:
        payload: dict[str, Any] = {"subject_id": subject_id, "type": session_type.value}
        if elapsed is not None:
            payload["elapsed"] = elapsed
        return session_from_payload(await self._request("POST", "/api/sessions/start", payload))

    async def end_session(self, session_id: int, duration: int) -> Session:
        data = await self._request("POST", f"/api/sessions/{session_id}/end", {"duration": duration})
        return session_from_payload(data["session"])

    async def tag_break(self, session_id: int, tag: str) -> Session:
        return session_from_payload(await self._request("POST", f"/api/sessions/{session_id}/tag", {"break_tag": tag}))

    async def reconcile(self, session_id: int, elapsed: int, gap: int) -> GapResult:
        data = await self._request(
            "POST",
            f"/api/sessions/{session_id}/reconcile",
            {"elapsed": elapsed, "gap": gap},
        )
        kind = data.get("classification")
        return GapResult(SessionType(kind) if kind else None, session_from_payload(data["current"]))

    async def active_session(self) -> Session | None:
        rows = await self._request("GET", "/api/sessions/active")
        return session_from_payload(rows[0]) if rows else None


class SessionTimer:
    def __init__(
        self,
        backend: TimerBackend,
        scheduler: Scheduler,
        clock: Callable[[], float] = time.time,
        break_threshold: int = BREAK_THRESHOLD_SECONDS,
        on_notice: Callable[[str], None] | None = None,
    ) -> None:
        self.backend = backend
        self.scheduler = scheduler
        self.clock = clock
        self.break_threshold = break_threshold
        self.on_notice = on_notice or (lambda text: logger.info("timer: %s", text))

        self.state = TimerState.IDLE
        self.elapsed = 0
        self.start_time: float | None = None
        self.subject_id: int | None = None
        self.session: Session | None = None
        self._tick_handle: CancelHandle | None = None
        self._pause_handle: CancelHandle | None = None
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    def tick(self) -> None:
        self.elapsed += 1

    def _start_ticking(self) -> None:
        self._stop_ticking()
        self._tick_handle = self.scheduler.every(TICK_SECONDS, self.tick)

    def _stop_ticking(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _cancel_pause_promotion(self) -> None:
        if self._pause_handle is not None:
            self._pause_handle.cancel()
            self._pause_handle = None

    def _reset(self) -> None:
        self._stop_ticking()
        self._cancel_pause_promotion()
        self.session = None
        self.elapsed = 0
        self.start_time = None
        self.state = TimerState.IDLE

    def _restore_ticking(self) -> None:
        if self.session is not None and self.state in (TimerState.RUNNING, TimerState.BREAK):
            self._start_ticking()

    async def _session_lost(self) -> None:
        assert self.session is not None
        logger.warning("session_id=%s is no longer active on the server", self.session.id)
        self._reset()
        self.on_notice("Session was ended elsewhere")
        await self.sync()

    async def _end_on_server(self) -> bool:
        """End the current session; False when the server no longer has it."""
        assert self.session is not None
        self._stop_ticking()
        try:
            await self.backend.end_session(self.session.id, self.elapsed)
        except NotFound:
            await self._session_lost()
            return False
        except Exception:
            self._restore_ticking()
            raise
        return True

    async def _guarded(self, action: Callable[[], Awaitable[None]]) -> bool:
        if self._in_flight:
            logger.debug("timer request ignored: another request is in flight")
            return False
        self._in_flight = True
        try:
            await action()
        finally:
            self._in_flight = False
        return True

    async def _open(self, subject_id: int, kind: SessionType) -> None:
        self._cancel_pause_promotion()
        self._stop_ticking()
        elapsed = self.elapsed if self.session is not None else None
        try:
            self.session = await self.backend.start_session(subject_id, kind, elapsed)
        except Exception:
            self._restore_ticking()
            raise
        self.subject_id = subject_id
        self.elapsed = 0
        self.start_time = self.clock()
        self.state = _STATE_FOR_TYPE[kind]
        self._start_ticking()

    async def sync(self) -> bool:
        """Adopt the server's active session when the timer is idle."""
        if self.state is not TimerState.IDLE:
            return False
        session = await self.backend.active_session()
        if session is None:
            return False
        started = session.start_time.timestamp()
        self.session = session
        self.subject_id = session.subject_id
        self.start_time = started
        self.elapsed = max(0, int(self.clock() - started))
        self.state = _STATE_FOR_TYPE[session.type]
        if session.type is not SessionType.SLEEP:
            self._start_ticking()
        return True

    async def start(self, subject_id: int, session_type: str | SessionType = SessionType.STUDY) -> bool:
        kind = SessionType.parse(session_type, default=SessionType.STUDY)
        return await self._guarded(lambda: self._open(subject_id, kind))

    async def pause(self) -> bool:
        if self.state is not TimerState.RUNNING or self.session is None:
            return False
        self._stop_ticking()
        self.state = TimerState.PAUSED
        self._pause_handle = self.scheduler.call_later(self.break_threshold, self._promote_pause)
        return True

    async def _promote_pause(self) -> None:
        self._pause_handle = None
        if self.state is TimerState.PAUSED:
            await self.start_break()

    async def resume(self) -> bool:
        if self.state is not TimerState.PAUSED or self.session is None:
            return False
        self._cancel_pause_promotion()
        self.start_time = self.clock() - self.elapsed
        self.state = TimerState.RUNNING
        self._start_ticking()
        return True

    async def stop(self) -> bool:
        if self.session is None:
            return False

        async def _stop() -> None:
            if not await self._end_on_server():
                return
            self._reset()
            self.on_notice("Session ended")

        return await self._guarded(_stop)

    async def start_break(self) -> bool:
        if self.subject_id is None:
            return False
        subject_id = self.subject_id
        return await self._guarded(lambda: self._open(subject_id, SessionType.BREAK))

    async def end_break(self) -> bool:
        if self.state is not TimerState.BREAK or self.session is None:
            return False

        async def _end_break() -> None:
            if not await self._end_on_server():
                return
            self._reset()
            self.on_notice("Break ended")
            if self.subject_id is not None:
                await self._open(self.subject_id, SessionType.STUDY)

        return await self._guarded(_end_break)

    async def tag_break(self, tag: str) -> Session:
        if self.session is None or self.session.type is not SessionType.BREAK:
            raise InvalidState("You can only tag active break sessions")
        self.session = await self.backend.tag_break(self.session.id, tag)
        return self.session

    async def on_visibility_change(self, visible: bool) -> bool:
        if self.state is not TimerState.RUNNING:
            return False
        if not visible:
            self._stop_ticking()
            return True
        if self.session is None or self.start_time is None:
            return False
        return await self._guarded(self._reconcile)

    async def _reconcile(self) -> None:
        assert self.session is not None and self.start_time is not None
        now = self.clock()
        gap = int(now - self.start_time) - self.elapsed
        if gap > 0:
            try:
                result = await self.backend.reconcile(self.session.id, self.elapsed, gap)
            except NotFound:
                await self._session_lost()
                return
            except Exception:
                # the gap stays unaccounted and is resubmitted on the next reconcile
                self._start_ticking()
                raise
            if result.classification is not None:
                self.session = result.current
                self.elapsed = 0
                label = "Sleep" if result.classification is SessionType.SLEEP else "Break"
                self.on_notice(f"{label} detected: away for {gap // 60}m")
        # absorbed gaps are not counted as study time
        self.start_time = now - self.elapsed
        self._start_ticking()

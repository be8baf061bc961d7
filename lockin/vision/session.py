"""ExerciseSessionManager: one active exercise at a time, frames in, minutes out.

- start() builds the initial classifier state
- feed() folds a landmark frame into the state
- finish() runs the reward calculator, credits the wallet and persists a record
"""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import sessionmaker

from lockin.core import dal
from lockin.core.db import SessionLocal
from lockin.core.errors import NoActiveSessionError
from lockin.core.models import ExerciseSessionRecord, utcnow
from lockin.rewards.calculator import calculate
from lockin.wallet.ledger import WalletLedger

from .classifier import ExerciseState, create_state, update
from .landmarks import LandmarkFrame


@dataclass
class ActiveSession:
    id: str
    started_at_utc: datetime
    state: ExerciseState
    last_frame_at: Optional[float] = None
    frames: int = 0


def record_to_dict(row: ExerciseSessionRecord) -> dict:
    return {
        "id": row.id,
        "exercise_type": row.exercise_type,
        "started_at_utc": row.started_at_utc.isoformat() if row.started_at_utc else None,
        "ended_at_utc": row.ended_at_utc.isoformat() if row.ended_at_utc else None,
        "rep_count": row.rep_count,
        "hold_seconds": row.hold_seconds,
        "earned_minutes": row.earned_minutes,
        "meets_minimum": bool(row.meets_minimum),
    }


class ExerciseSessionManager:
    def __init__(
        self,
        wallet: WalletLedger,
        session_factory: sessionmaker = SessionLocal,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.wallet = wallet
        self._session_factory = session_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._active: Optional[ActiveSession] = None

    def start(self, exercise_type: str) -> dict:
        state = create_state(exercise_type)
        previous = None
        with self._lock:
            if self._active is not None:
                previous = self._active
            self._active = ActiveSession(id=uuid.uuid4().hex, started_at_utc=utcnow(), state=state)
            session_id = self._active.id
        if previous is not None:
            logger.info("Session {} replaced by a new {} session", previous.id, exercise_type)
            self._commit(previous)
        logger.info("Exercise session {} started: {}", session_id, exercise_type)
        return {"session_id": session_id, "state": state.to_dict()}

    def feed(self, frame: LandmarkFrame, delta_ms: Optional[float] = None) -> dict:
        """Fold one frame; without ``delta_ms`` the gap since the previous frame is measured."""
        with self._lock:
            active = self._require_active()
            now = self._clock()
            if delta_ms is None:
                delta_ms = 0.0 if active.last_frame_at is None else (now - active.last_frame_at) * 1000.0
            active.last_frame_at = now
            active.frames += 1
            active.state = update(active.state, frame, delta_ms)
            return {"session_id": active.id, "state": active.state.to_dict()}

    def status(self) -> Optional[dict]:
        with self._lock:
            if self._active is None:
                return None
            return {
                "session_id": self._active.id,
                "frames": self._active.frames,
                "state": self._active.state.to_dict(),
            }

    def finish(self) -> dict:
        with self._lock:
            active = self._require_active()
            self._active = None
        return self._commit(active)

    def _require_active(self) -> ActiveSession:
        if self._active is None:
            raise NoActiveSessionError("no exercise session in progress")
        return self._active

    def _commit(self, active: ActiveSession) -> dict:
        state = active.state
        reward = calculate(state)
        if reward.earned_minutes > 0:
            note = (
                f"{state.hold_seconds:.0f}s {state.exercise_type}"
                if state.rep_count == 0 and state.hold_seconds
                else f"{state.rep_count} {state.exercise_type}"
            )
            self.wallet.commit_earn(reward.earned_minutes, source=active.id, note=note)
        db = self._session_factory()
        try:
            row = dal.add_exercise_session(
                db,
                id=active.id,
                exercise_type=state.exercise_type,
                started_at_utc=active.started_at_utc,
                ended_at_utc=utcnow(),
                rep_count=state.rep_count,
                hold_seconds=round(state.hold_seconds, 3),
                earned_minutes=reward.earned_minutes,
                meets_minimum=reward.meets_minimum,
            )
            db.commit()
            record = record_to_dict(row)
        finally:
            db.close()
        logger.info(
            "Exercise session {} finished: {} reps, {:.1f}s held, {} min earned",
            active.id, state.rep_count, state.hold_seconds, reward.earned_minutes,
        )
        return {
            "session": record,
            "reward": reward.to_dict(),
            "wallet": self.wallet.get_snapshot().to_dict(),
        }

    def history(self, limit: int = 20) -> list[dict]:
        db = self._session_factory()
        try:
            return [record_to_dict(r) for r in dal.get_exercise_history(db, limit=limit)]
        finally:
            db.close()

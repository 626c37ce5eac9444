import logging
import random
import threading
from typing import Dict, Optional

from relay_server.errors import (
    CodeSpaceExhausted,
    SessionFull,
    SessionLocked,
    SessionNotFound,
)
from relay_server.models import (
    MAX_PARTICIPANTS,
    JoinResult,
    LeaveResult,
    Participant,
    Session,
)

logger = logging.getLogger(__name__)

# No 0/O or 1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6


def normalize_code(code) -> str:
    return str(code or "").strip().upper()


class SessionManager:
    """In-memory directory of sessions keyed by their shareable code.

    Every mutation goes through ``create``, ``join`` or ``leave`` and runs
    under a single lock, so two joins racing for the last slot of a session
    are serialized and exactly one of them wins.
    """

    def __init__(self, code_length: int = CODE_LENGTH, alphabet: str = CODE_ALPHABET,
                 max_code_attempts: int = 1000, rng: Optional[random.Random] = None):
        self.sessions: Dict[str, Session] = {}
        self.client_map: Dict[str, Participant] = {}  # participant id -> record
        self.code_length = code_length
        self.alphabet = alphabet
        self.max_code_attempts = max_code_attempts
        self._rng = rng or random.SystemRandom()
        self._lock = threading.Lock()

    def generate_code(self) -> str:
        return "".join(self._rng.choice(self.alphabet) for _ in range(self.code_length))

    def create(self, participant_id: str) -> str:
        with self._lock:
            for _ in range(self.max_code_attempts):
                code = self.generate_code()
                if code not in self.sessions:
                    break
            else:
                raise CodeSpaceExhausted(
                    f"no free session code after {self.max_code_attempts} attempts"
                )

            self.sessions[code] = Session(code, [participant_id])
            self.client_map[participant_id] = Participant(participant_id, code)
        logger.info(f"[Session] Created: {code} by {participant_id}")
        return code

    def join(self, code: str, participant_id: str) -> JoinResult:
        code = normalize_code(code)
        with self._lock:
            session = self.sessions.get(code)
            if session is None:
                logger.warning(f"[Session] Join failed, code '{code}' not found")
                raise SessionNotFound(code)
            if session.is_full:
                logger.warning(f"[Session] Join failed, {code} is full")
                raise SessionFull(code)
            if session.locked:
                logger.warning(f"[Session] Join failed, {code} is locked")
                raise SessionLocked(code)

            session.participants.append(participant_id)
            self.client_map[participant_id] = Participant(participant_id, code)
            ready = len(session.participants) == MAX_PARTICIPANTS
            if ready:
                session.locked = True
            result = JoinResult(code, tuple(session.participants), ready)

        logger.info(f"[Session] {participant_id} joined {code}")
        if ready:
            logger.info(f"[Session] {code} is READY, initiator {result.initiator}")
        return result

    def leave(self, participant_id: str) -> Optional[LeaveResult]:
        with self._lock:
            participant = self.client_map.pop(participant_id, None)
            if participant is None or participant.code is None:
                return None

            code = participant.code
            session = self.sessions.get(code)
            if session is None:
                return None

            session.participants = [p for p in session.participants if p != participant_id]
            deleted = session.is_empty
            if deleted:
                del self.sessions[code]
            else:
                session.locked = False
            result = LeaveResult(code, tuple(session.participants), deleted)

        logger.info(f"[Session] {participant_id} left {code}")
        if deleted:
            logger.info(f"[Session] Deleted empty session: {code}")
        return result

    def lookup(self, participant_id: str) -> Optional[str]:
        with self._lock:
            participant = self.client_map.get(participant_id)
            return participant.code if participant else None

    def peer_of(self, participant_id: str) -> Optional[str]:
        with self._lock:
            participant = self.client_map.get(participant_id)
            if participant is None:
                return None
            session = self.sessions.get(participant.code)
            return session.peer_of(participant_id) if session else None

    def get(self, code: str) -> Optional[Session]:
        """Copy of the session record, for diagnostics."""
        with self._lock:
            session = self.sessions.get(normalize_code(code))
            if session is None:
                return None
            return Session(session.code, list(session.participants),
                           session.locked, session.created_at)

    def stats(self) -> dict:
        with self._lock:
            return {
                "active_sessions": len(self.sessions),
                "participants": len(self.client_map),
            }

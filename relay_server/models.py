from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

MAX_PARTICIPANTS = 2


class NegotiationState(str, Enum):
    IDLE = "idle"
    AWAITING_ANSWER = "awaiting-answer"
    ESTABLISHED = "established"


@dataclass
class Session:
    code: str
    participants: List[str] = field(default_factory=list)  # join order
    locked: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= MAX_PARTICIPANTS

    @property
    def is_empty(self) -> bool:
        return not self.participants

    def peer_of(self, participant_id: str) -> Optional[str]:
        for pid in self.participants:
            if pid != participant_id:
                return pid
        return None


@dataclass
class Participant:
    id: str
    code: Optional[str] = None


@dataclass(frozen=True)
class JoinResult:
    """Outcome of a successful join.

    ``participants`` is a snapshot taken under the directory lock. When
    ``ready`` is set the first entry is the side that starts negotiation.
    """
    code: str
    participants: Tuple[str, ...]
    ready: bool

    @property
    def initiator(self) -> Optional[str]:
        return self.participants[0] if self.ready else None

    @property
    def target(self) -> Optional[str]:
        return self.participants[1] if self.ready else None


@dataclass(frozen=True)
class LeaveResult:
    code: str
    remaining: Tuple[str, ...]
    deleted: bool

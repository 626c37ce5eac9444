class SessionError(Exception):
    """Recoverable failure reported back to the requesting connection only."""

    reason = "error"

    def __init__(self, code: str = "", message: str = ""):
        self.code = code
        super().__init__(message or f"{self.reason}: {code}")


class SessionNotFound(SessionError):
    reason = "not-found"


class SessionFull(SessionError):
    reason = "full"


class SessionLocked(SessionError):
    reason = "locked"


class Unauthorized(SessionError):
    reason = "unauthorized"


class CodeSpaceExhausted(RuntimeError):
    pass

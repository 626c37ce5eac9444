import asyncio
import logging
import uuid
from typing import Callable, Dict, Optional

from fastapi import WebSocket

from relay_server.errors import SessionError, Unauthorized
from relay_server.models import NegotiationState
from relay_server.session_manager import SessionManager, normalize_code

logger = logging.getLogger(__name__)


class Connection:
    """One client socket and its outbound queue.

    ``send`` never blocks: messages are queued and a writer task pumps them
    into the socket in order.
    """

    def __init__(self, websocket: WebSocket, queue_size: int = 256):
        self.websocket = websocket
        self.participant_id = uuid.uuid4().hex[:12]
        self.negotiation = NegotiationState.IDLE
        self.outbound: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.closed = False
        self.torn_down = False
        self._writer: Optional[asyncio.Task] = None

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def send(self, message: dict) -> bool:
        if self.closed:
            return False
        try:
            self.outbound.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"[Gateway] Outbound queue full for {self.participant_id}, "
                           f"dropping {message.get('type')}")
            return False
        return True

    async def _write_loop(self):
        while True:
            message = await self.outbound.get()
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                logger.info(f"[Gateway] Send to {self.participant_id} failed: {e}")
                self.closed = True
                return

    def stop(self):
        self.closed = True
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None


class RelayGateway:
    """Maps connections to participants and dispatches their messages.

    The gateway never touches session records itself; it calls the
    ``SessionManager`` operations and turns their results (or errors) into
    client notifications.
    """

    def __init__(self, manager: SessionManager, queue_size: int = 256):
        self.manager = manager
        self.queue_size = queue_size
        self.connections: Dict[str, Connection] = {}
        self.handlers: Dict[str, Callable[[Connection, dict], None]] = {
            "create-session": self.handle_create,
            "join-session": self.handle_join,
            "leave-session": self.handle_leave,
            "ready": self.handle_ready,
            "offer": self.handle_negotiation,
            "answer": self.handle_negotiation,
            "candidate": self.handle_negotiation,
            "chat": self.handle_chat,
            "ping": self.handle_ping,
            "pong": self.handle_pong,
        }

    def connect(self, websocket: WebSocket) -> Connection:
        connection = Connection(websocket, self.queue_size)
        self.connections[connection.participant_id] = connection
        connection.start()
        logger.info(f"[Gateway] {connection.participant_id} connected "
                    f"(total: {len(self.connections)})")
        return connection

    def disconnect(self, connection: Connection):
        """Tear a connection down. Safe to call more than once."""
        if connection.torn_down:
            return
        connection.torn_down = True
        self._leave(connection)
        connection.stop()
        self.connections.pop(connection.participant_id, None)
        logger.info(f"[Gateway] {connection.participant_id} disconnected "
                    f"(remaining: {len(self.connections)})")

    def dispatch(self, connection: Connection, message):
        if connection.torn_down:
            return
        if not isinstance(message, dict):
            connection.send({"type": "error", "message": "Message must be a JSON object"})
            return

        msg_type = message.get("type")
        handler = self.handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            connection.send({"type": "error", "message": f"Unknown message type: {msg_type}"})
            return

        try:
            handler(connection, message)
        except SessionError as e:
            logger.info(f"[Gateway] {msg_type} from {connection.participant_id} "
                        f"rejected: {e.reason}")
            connection.send({"type": "session-error", "reason": e.reason})

    def deliver(self, participant_id: str, message: dict) -> bool:
        target = self.connections.get(participant_id)
        if target is None:
            logger.debug(f"[Gateway] Dropping {message.get('type')} for vanished {participant_id}")
            return False
        return target.send(message)

    # -- session lifecycle -------------------------------------------------

    def _already_in_session(self, connection: Connection) -> bool:
        current = self.manager.lookup(connection.participant_id)
        if current is None:
            return False
        connection.send({
            "type": "error",
            "message": f"Already in session {current}, leave it first",
        })
        return True

    def handle_create(self, connection: Connection, message: dict):
        if self._already_in_session(connection):
            return
        code = self.manager.create(connection.participant_id)
        connection.send({"type": "session-created", "code": code})

    def handle_join(self, connection: Connection, message: dict):
        if self._already_in_session(connection):
            return
        result = self.manager.join(message.get("code"), connection.participant_id)
        connection.send({"type": "session-joined", "code": result.code})

        if result.ready:
            for pid in result.participants:
                self.deliver(pid, {"type": "session-ready", "code": result.code})
            self.deliver(result.initiator, {"type": "start-negotiation", "target": result.target})

    def handle_leave(self, connection: Connection, message: dict):
        self._leave(connection)

    def _leave(self, connection: Connection):
        # Shared by explicit leave and disconnect
        connection.negotiation = NegotiationState.IDLE
        result = self.manager.leave(connection.participant_id)
        if result is None:
            return
        for pid in result.remaining:
            peer = self.connections.get(pid)
            if peer is not None:
                peer.negotiation = NegotiationState.IDLE
            self.deliver(pid, {"type": "peer-departed", "id": connection.participant_id})

    # -- relaying ----------------------------------------------------------

    def handle_ready(self, connection: Connection, message: dict):
        peer = self.manager.peer_of(connection.participant_id)
        if peer is None:
            return
        self.deliver(peer, {"type": "peer-ready", "from": connection.participant_id})

    def handle_negotiation(self, connection: Connection, message: dict):
        kind = message["type"]
        target_id = message.get("to")
        target = self.connections.get(target_id) if isinstance(target_id, str) else None
        if target is None:
            logger.debug(f"[Gateway] {kind} to unknown peer {target_id} dropped")
            return
        if self.manager.peer_of(connection.participant_id) != target_id:
            raise Unauthorized(self.manager.lookup(connection.participant_id) or "")

        target.send({"type": kind, "payload": message.get("payload"),
                     "from": connection.participant_id})

        if kind == "offer":
            connection.negotiation = NegotiationState.AWAITING_ANSWER
        elif kind == "answer":
            connection.negotiation = NegotiationState.ESTABLISHED
            target.negotiation = NegotiationState.ESTABLISHED

    def handle_chat(self, connection: Connection, message: dict):
        claimed = normalize_code(message.get("code"))
        current = self.manager.lookup(connection.participant_id)
        if current is None or current != claimed:
            raise Unauthorized(claimed)

        peer = self.manager.peer_of(connection.participant_id)
        if peer is not None:
            self.deliver(peer, {"type": "chat", "text": message.get("text"),
                                "from": connection.participant_id})

    def handle_ping(self, connection: Connection, message: dict):
        connection.send({"type": "pong"})

    def handle_pong(self, connection: Connection, message: dict):
        pass  # keepalive acknowledged

    def stats(self) -> dict:
        return {"connections": len(self.connections), **self.manager.stats()}

import asyncio
import base64
import json
import os
import sys

import websockets


async def recv_type(ws, expected):
    """Read frames until one of type ``expected`` arrives (skips keepalives)."""
    while True:
        msg = json.loads(await ws.recv())
        if msg.get("type") in ("ping", "pong"):
            continue
        if msg.get("type") != expected:
            raise AssertionError(f"expected '{expected}', got {msg}")
        return msg


async def verify(uri):
    async with websockets.connect(uri) as ws_a, websockets.connect(uri) as ws_b:
        id_a = (await recv_type(ws_a, "welcome"))["id"]
        id_b = (await recv_type(ws_b, "welcome"))["id"]

        # 1. A: create
        await ws_a.send(json.dumps({"type": "create-session"}))
        code = (await recv_type(ws_a, "session-created"))["code"]
        print(f"[OK] A created session {code}")

        # 2. B: join (lower-case on purpose)
        await ws_b.send(json.dumps({"type": "join-session", "code": code.lower()}))
        await recv_type(ws_b, "session-joined")
        await recv_type(ws_a, "session-ready")
        await recv_type(ws_b, "session-ready")
        start = await recv_type(ws_a, "start-negotiation")
        if start["target"] != id_b:
            print(f"[FAILED] start-negotiation targets {start['target']}, expected {id_b}")
            return False
        print("[OK] session-ready on both sides, A designated initiator")

        # 3. Opaque negotiation round trip
        blob = base64.b64encode(os.urandom(64)).decode()
        await ws_a.send(json.dumps({"type": "offer", "payload": {"sdp": blob}, "to": id_b}))
        offer = await recv_type(ws_b, "offer")
        await ws_b.send(json.dumps({"type": "answer", "payload": blob, "to": id_a}))
        answer = await recv_type(ws_a, "answer")
        if offer["payload"] != {"sdp": blob} or answer["payload"] != blob or offer["from"] != id_a:
            print("[FAILED] negotiation payload mismatch")
            return False
        print("[OK] offer/answer relayed unmodified")

        # 4. Chat
        await ws_a.send(json.dumps({"type": "chat", "text": "HELLO_WORLD", "code": code}))
        chat = await recv_type(ws_b, "chat")
        if chat["text"] != "HELLO_WORLD":
            print(f"[FAILED] chat mismatch: {chat}")
            return False
        print("[OK] chat relayed")

        # 5. Leave
        await ws_a.send(json.dumps({"type": "leave-session"}))
        departed = await recv_type(ws_b, "peer-departed")
        if departed["id"] != id_a:
            print(f"[FAILED] peer-departed for {departed['id']}, expected {id_a}")
            return False
        print("[OK] peer-departed delivered")
        return True


if __name__ == "__main__":
    uri = sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:8000/ws"
    ok = asyncio.run(verify(uri))
    print("SUCCESS" if ok else "FAILED")
    sys.exit(0 if ok else 1)

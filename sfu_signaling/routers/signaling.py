"""WebSocket endpoint carrying the signaling protocol."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from ..schemas.signaling import (
    ErrorCode,
    ErrorMessage,
    Notification,
    SignalingEnvelope,
    build_frame,
    resolve_event,
)
from ..services.signaling import ReplyChannel, SignalingConnection, SignalingCoordinator, SignalingRequest

logger = logging.getLogger(__name__)

router = APIRouter()


async def _reject(websocket: WebSocket, reply: ReplyChannel, code: ErrorCode, message: str) -> None:
    """Report a frame-level problem, as an ack when possible, otherwise as an error event."""

    error = ErrorMessage(code=code, message=message).to_wire()
    if reply.acknowledged:
        await reply.send(error)
    else:
        await websocket.send_json(build_frame(Notification.ERROR.value, error))


async def _read_frame(websocket: WebSocket) -> str | None:
    """Return the next frame as text, or None when a binary frame is not UTF-8."""

    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE), message.get("reason"))
    text = message.get("text")
    if text is not None:
        return text
    try:
        return (message.get("bytes") or b"").decode("utf-8")
    except UnicodeDecodeError:
        return None


async def _decode(websocket: WebSocket, raw: str | None) -> tuple[SignalingRequest, ReplyChannel] | None:
    """Turn a frame into a request, answering malformed frames directly."""

    message: Any = None
    try:
        if raw is None:
            raise UnicodeError("binary frame is not UTF-8")
        message = json.loads(raw)
        envelope = SignalingEnvelope.model_validate(message)
    except (UnicodeError, json.JSONDecodeError, ValidationError):
        ack_id = message.get("ackId") if isinstance(message, dict) else None
        if not isinstance(ack_id, (int, str)):
            ack_id = None
        reply = ReplyChannel(websocket.send_json, ack_id)
        await _reject(websocket, reply, ErrorCode.INVALID_MESSAGE, "Frames must be JSON objects with an event name")
        return None

    reply = ReplyChannel(websocket.send_json, envelope.ack_id)
    event = resolve_event(envelope.event)
    if event is None:
        await _reject(websocket, reply, ErrorCode.UNKNOWN_EVENT, f"Unknown event '{envelope.event}'")
        return None

    return SignalingRequest(event=event, payload=envelope.data or {}), reply


@router.websocket("/ws")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Accept a peer, relay its requests and clean up when it goes away.

    Each request runs as its own task so a slow SFU call holds up only that
    request; the socket keeps reading and a close is noticed right away.
    """

    coordinator: SignalingCoordinator = websocket.app.state.coordinator
    peer_id = websocket.query_params.get("peer_id") or str(uuid4())

    if coordinator.is_connected(peer_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="peer_id already connected")
        return

    await websocket.accept()
    coordinator.register(SignalingConnection(connection_id=peer_id, send=websocket.send_json))
    pending: set[asyncio.Task[None]] = set()

    def _finished(task: asyncio.Task[None]) -> None:
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Request task failed peer_id=%s", peer_id, exc_info=task.exception())

    try:
        await websocket.send_json(build_frame(Notification.CONNECTED.value, {"peerId": peer_id}))
        while True:
            raw = await _read_frame(websocket)
            decoded = await _decode(websocket, raw)
            if decoded is None:
                continue
            request, reply = decoded
            task = asyncio.create_task(coordinator.handle(peer_id, request, reply))
            pending.add(task)
            task.add_done_callback(_finished)
    except WebSocketDisconnect:
        pass
    finally:
        in_flight = list(pending)
        for task in in_flight:
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        await coordinator.disconnect(peer_id)

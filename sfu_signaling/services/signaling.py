"""Signaling coordinator brokering room membership and SFU negotiation."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from ..schemas.signaling import (
    ErrorCode,
    ErrorMessage,
    ExistingProducer,
    JoinRoomReply,
    NewProducerEvent,
    Notification,
    PeerDisconnectedEvent,
    SignalingEvent,
    build_frame,
)
from . import validation
from .peers import PeerSession, PeerSessionStore
from .rooms import RoomDirectory
from .sfu import SfuGateway

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]

ACK_EVENT = "ack"


@dataclass(slots=True)
class SignalingConnection:
    """Connection wrapper for signaling participants."""

    connection_id: str
    send: SendCallable


@dataclass(slots=True)
class SignalingRequest:
    """One decoded client request, tagged by its event name."""

    event: SignalingEvent
    payload: Dict[str, Any] = field(default_factory=dict)


class ReplyChannel:
    """Deliver exactly one reply for a request.

    When the client did not ask for an acknowledgement (no ``ack_id``) the
    reply is recorded but nothing is written to the socket. A second reply is
    dropped.
    """

    def __init__(self, send: Optional[SendCallable] = None, ack_id: int | str | None = None) -> None:
        self._send = send
        self._ack_id = ack_id
        self.payload: Optional[dict] = None
        self.sent = False

    @property
    def acknowledged(self) -> bool:
        """Whether the client asked for a reply frame."""

        return self._send is not None and self._ack_id is not None

    async def send(self, payload: dict) -> None:
        if self.sent:
            logger.warning("Dropping duplicate reply ack_id=%s", self._ack_id)
            return
        self.sent = True
        self.payload = payload
        if not self.acknowledged:
            return
        await self._send(build_frame(ACK_EVENT, payload, self._ack_id))

    async def error(self, code: ErrorCode, message: str) -> None:
        await self.send(ErrorMessage(code=code, message=message).to_wire())


Handler = Callable[[str, Dict[str, Any], ReplyChannel], Awaitable[None]]


class SignalingCoordinator:
    """Answer signaling requests and fan out room notifications.

    The coordinator owns the room directory, the peer sessions and the set of
    live connections. Everything runs on one event loop, so state is mutated
    without locks; any ``await`` may however let another connection's handler
    change membership before the current one resumes.
    """

    def __init__(self, rooms: RoomDirectory, gateway: SfuGateway, sessions: PeerSessionStore) -> None:
        self.rooms = rooms
        self.gateway = gateway
        self.sessions = sessions
        self._connections: Dict[str, SignalingConnection] = {}
        self._handlers: Dict[SignalingEvent, Handler] = {
            SignalingEvent.JOIN_ROOM: self.join_room,
            SignalingEvent.CREATE_TRANSPORT: self.create_transport,
            SignalingEvent.CONNECT_TRANSPORT: self.connect_transport,
            SignalingEvent.PRODUCE: self.produce,
            SignalingEvent.CONSUME: self.consume,
            SignalingEvent.LEAVE_ROOM: self.leave_room,
        }

    def register(self, connection: SignalingConnection) -> None:
        self._connections[connection.connection_id] = connection
        logger.info("Client connected peer_id=%s", connection.connection_id)

    def unregister(self, peer_id: str) -> None:
        self._connections.pop(peer_id, None)

    def is_connected(self, peer_id: str) -> bool:
        return peer_id in self._connections

    async def handle(self, peer_id: str, request: SignalingRequest, reply: ReplyChannel) -> None:
        """Dispatch a request to the flow registered for its event."""

        handler = self._handlers[request.event]
        await handler(peer_id, request.payload, reply)

    async def join_room(self, peer_id: str, payload: Dict[str, Any], reply: ReplyChannel) -> None:
        meeting_id = payload.get("meetingId")
        user_id = payload.get("userId")
        user_name = payload.get("userName")

        if not validation.validate_room_id(meeting_id):
            await reply.error(
                ErrorCode.INVALID_MEETING_ID,
                "Meeting ID must be a non-empty string of at most 100 characters",
            )
            return
        if not validation.validate_user_id(user_id):
            await reply.error(ErrorCode.INVALID_USER_ID, "User ID must be a non-empty string")
            return
        if not validation.validate_user_name(user_name):
            await reply.error(ErrorCode.INVALID_USER_NAME, "User name must be a non-empty string")
            return

        try:
            # Taken before self-insertion. Peers may join or leave while the SFU
            # lookups below are awaited, so the result can be stale; later
            # new-producer and peer-disconnected notifications reconcile it.
            other_peers = self.rooms.get_peers(meeting_id, exclude_peer_id=peer_id)
            existing = await self._collect_existing_producers(other_peers)

            self.sessions.save(peer_id, PeerSession(user_id=user_id, user_name=user_name))
            self.rooms.add_peer(meeting_id, peer_id)

            # No rollback below: a failed capability fetch leaves the peer in the room.
            try:
                capabilities = await self.gateway.get_capabilities()
            except Exception:  # noqa: BLE001 - reported on the reply channel
                logger.exception("Failed to get RTP capabilities peer_id=%s meeting_id=%s", peer_id, meeting_id)
                await reply.error(ErrorCode.RTP_CAPABILITIES_ERROR, "Failed to get RTP capabilities")
                return

            await reply.send(
                JoinRoomReply(existing_producers=existing, rtp_capabilities=capabilities).to_wire()
            )
            await self._notify([peer_id], Notification.RTP_CAPABILITIES, capabilities)
        except Exception:  # noqa: BLE001 - single fallback path for the flow
            logger.exception("Error in join-room handler peer_id=%s", peer_id)
            await reply.error(ErrorCode.JOIN_ROOM_ERROR, "Internal server error")

    async def _collect_existing_producers(self, peer_ids: Iterable[str]) -> list[ExistingProducer]:
        existing: list[ExistingProducer] = []
        for other_id in peer_ids:
            session = self.sessions.get_or_blank(other_id)
            try:
                data = await self.gateway.list_producers(other_id)
            except Exception:  # noqa: BLE001 - one bad peer must not abort the join
                logger.warning("Failed to get producers for peer peer_id=%s", other_id)
                continue
            producers = data.get("producers") if isinstance(data, dict) else None
            if not producers:
                continue
            existing.append(
                ExistingProducer(
                    peer_id=other_id,
                    user_id=session.user_id,
                    user_name=session.user_name,
                    producers=producers,
                )
            )
        return existing

    async def create_transport(self, peer_id: str, payload: Dict[str, Any], reply: ReplyChannel) -> None:
        try:
            transport = await self.gateway.create_transport(peer_id)
        except Exception:  # noqa: BLE001
            logger.exception("Error in create-transport handler peer_id=%s", peer_id)
            await reply.error(ErrorCode.CREATE_TRANSPORT_ERROR, "Failed to create transport")
            return
        await reply.send(transport)

    async def connect_transport(self, peer_id: str, payload: Dict[str, Any], reply: ReplyChannel) -> None:
        transport_id = payload.get("transportId")
        dtls_parameters = payload.get("dtlsParameters")

        if not validation.validate_transport_id(transport_id):
            await reply.error(ErrorCode.INVALID_TRANSPORT_ID, "Invalid transport ID")
            return
        if not validation.validate_dtls_parameters(dtls_parameters):
            await reply.error(ErrorCode.INVALID_DTLS_PARAMETERS, "Invalid DTLS parameters")
            return

        try:
            await self.gateway.connect_transport(transport_id, dtls_parameters, peer_id)
        except Exception:  # noqa: BLE001
            logger.exception("Error in connect-transport handler peer_id=%s transport_id=%s", peer_id, transport_id)
            await reply.error(ErrorCode.CONNECT_TRANSPORT_ERROR, "Failed to connect transport")
            return
        await reply.send({})

    async def produce(self, peer_id: str, payload: Dict[str, Any], reply: ReplyChannel) -> None:
        transport_id = payload.get("transportId")
        kind = payload.get("kind")
        rtp_parameters = payload.get("rtpParameters")

        if not validation.validate_transport_id(transport_id):
            await reply.error(ErrorCode.INVALID_TRANSPORT_ID, "Invalid transport ID")
            return
        if not validation.validate_kind(kind):
            await reply.error(ErrorCode.INVALID_KIND, "Kind must be 'audio' or 'video'")
            return
        if not validation.validate_rtp_parameters(rtp_parameters):
            await reply.error(ErrorCode.INVALID_RTP_PARAMETERS, "Invalid RTP parameters")
            return

        try:
            result = await self.gateway.produce(transport_id, kind, rtp_parameters, peer_id)
            producer_id = str(result["id"])
        except Exception:  # noqa: BLE001
            logger.exception("Error in produce handler peer_id=%s kind=%s", peer_id, kind)
            await reply.error(ErrorCode.PRODUCE_ERROR, "Failed to produce")
            return

        room_id = self.rooms.get_room_id(peer_id)
        if room_id is not None:
            session = self.sessions.get_or_blank(peer_id)
            event = NewProducerEvent(
                producer_id=producer_id,
                peer_id=peer_id,
                kind=kind,
                user_id=session.user_id,
                user_name=session.user_name,
            )
            await self._notify(
                self.rooms.get_peers(room_id, exclude_peer_id=peer_id),
                Notification.NEW_PRODUCER,
                event.to_wire(),
            )

        await reply.send(result)

    async def consume(self, peer_id: str, payload: Dict[str, Any], reply: ReplyChannel) -> None:
        transport_id = payload.get("transportId")
        producer_id = payload.get("producerId")
        kind = payload.get("kind")

        if not validation.validate_transport_id(transport_id):
            await reply.error(ErrorCode.INVALID_TRANSPORT_ID, "Invalid transport ID")
            return
        if not validation.validate_producer_id(producer_id):
            await reply.error(ErrorCode.INVALID_PRODUCER_ID, "Invalid producer ID")
            return
        if not validation.validate_kind(kind):
            await reply.error(ErrorCode.INVALID_KIND, "Kind must be 'audio' or 'video'")
            return

        try:
            consumer = await self.gateway.consume(transport_id, producer_id, kind, peer_id)
        except Exception:  # noqa: BLE001
            logger.exception("Error in consume handler peer_id=%s producer_id=%s", peer_id, producer_id)
            await reply.error(ErrorCode.CONSUME_ERROR, "Failed to consume")
            return
        await reply.send(consumer)

    async def leave_room(
        self,
        peer_id: str,
        payload: Optional[Dict[str, Any]] = None,
        reply: Optional[ReplyChannel] = None,
    ) -> None:
        """Drop the peer from its rooms and tell the remaining members."""

        await self._remove_peer(peer_id)
        logger.info("Peer left room peer_id=%s", peer_id)

    async def disconnect(self, peer_id: str) -> None:
        """Same cleanup as leaving, then forget the connection."""

        await self._remove_peer(peer_id)
        self.unregister(peer_id)
        logger.info("Client disconnected peer_id=%s", peer_id)

    async def _remove_peer(self, peer_id: str) -> None:
        removed_rooms = self.rooms.remove_peer(peer_id)

        notice = PeerDisconnectedEvent(peer_id=peer_id).to_wire()
        for room_id in removed_rooms:
            await self._notify(self.rooms.get_peers(room_id), Notification.PEER_DISCONNECTED, notice)

        self.sessions.clear(peer_id)

    async def _notify(self, peer_ids: Iterable[str], event: Notification, data: Any) -> None:
        frame = build_frame(event.value, data)
        targets: list[SignalingConnection] = []
        for target_id in peer_ids:
            connection = self._connections.get(target_id)
            if connection is None:
                logger.debug("No live connection for notification peer_id=%s event=%s", target_id, event.value)
                continue
            targets.append(connection)

        if not targets:
            return

        results = await asyncio.gather(*(target.send(frame) for target in targets), return_exceptions=True)
        for target, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Failed to deliver notification peer_id=%s event=%s error=%s",
                    target.connection_id,
                    event.value,
                    result,
                )

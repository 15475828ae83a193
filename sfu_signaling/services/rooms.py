"""In-memory room membership index."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


class RoomDirectory:
    """Track which peers belong to which rooms.

    Rooms are created on the first ``add_peer`` and dropped as soon as their
    last member is removed, so a room id is present iff it has members.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def add_peer(self, room_id: str, peer_id: str) -> None:
        """Insert a peer into a room, creating the room if needed."""

        peers = self._rooms.setdefault(room_id, set())
        peers.add(peer_id)
        logger.info("Peer joined room room_id=%s peer_id=%s peer_count=%d", room_id, peer_id, len(peers))

    def remove_peer(self, peer_id: str) -> list[str]:
        """Remove a peer from every room holding it and return those room ids.

        A peer normally sits in a single room, but the whole index is scanned
        so a stray membership never outlives the connection.
        """

        removed: list[str] = []
        for room_id, peers in list(self._rooms.items()):
            if peer_id not in peers:
                continue
            peers.discard(peer_id)
            removed.append(room_id)
            if not peers:
                del self._rooms[room_id]
                logger.info("Room deleted (empty) room_id=%s", room_id)
            else:
                logger.info("Peer left room room_id=%s peer_id=%s peer_count=%d", room_id, peer_id, len(peers))
        return removed

    def get_peers(self, room_id: str, exclude_peer_id: Optional[str] = None) -> list[str]:
        """Return the members of a room, optionally without one peer."""

        peers = self._rooms.get(room_id)
        if not peers:
            return []
        return [peer_id for peer_id in peers if peer_id != exclude_peer_id]

    def get_room_id(self, peer_id: str) -> Optional[str]:
        for room_id, peers in self._rooms.items():
            if peer_id in peers:
                return room_id
        return None

    def has_peer(self, room_id: str, peer_id: str) -> bool:
        return peer_id in self._rooms.get(room_id, ())

    def get_peer_count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, ()))

    def room_ids(self) -> list[str]:
        return list(self._rooms)

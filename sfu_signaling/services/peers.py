"""Per-connection identity recorded at join time."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(slots=True)
class PeerSession:
    user_id: str
    user_name: str


class PeerSessionStore:
    """Small in-memory registry of joined peers keyed by connection id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, PeerSession] = {}

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, peer_id: str) -> Optional[PeerSession]:
        return self._sessions.get(peer_id)

    def get_or_blank(self, peer_id: str) -> PeerSession:
        """Return the peer's session, or empty identity fields when it has none."""

        return self._sessions.get(peer_id) or PeerSession(user_id="", user_name="")

    def save(self, peer_id: str, session: PeerSession) -> None:
        self._sessions[peer_id] = session

    def clear(self, peer_id: str) -> None:
        self._sessions.pop(peer_id, None)

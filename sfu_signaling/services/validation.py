"""Field checks for inbound signaling payloads.

Every check is shallow: it guards the relay against malformed input, while
the SFU remains responsible for the semantic validity of media parameters.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

MAX_ROOM_ID_LENGTH = 100
MEDIA_KINDS = frozenset({"audio", "video"})


def _is_non_blank_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_room_id(room_id: Any) -> bool:
    """Non-empty after trimming and at most 100 characters."""

    return _is_non_blank_string(room_id) and len(room_id) <= MAX_ROOM_ID_LENGTH


def validate_user_id(user_id: Any) -> bool:
    return _is_non_blank_string(user_id)


def validate_user_name(user_name: Any) -> bool:
    return _is_non_blank_string(user_name)


def validate_transport_id(transport_id: Any) -> bool:
    return _is_non_blank_string(transport_id)


def validate_producer_id(producer_id: Any) -> bool:
    return _is_non_blank_string(producer_id)


def validate_kind(kind: Any) -> bool:
    """Only the exact literals ``audio`` and ``video`` are accepted."""

    return isinstance(kind, str) and kind in MEDIA_KINDS


def validate_dtls_parameters(params: Any) -> bool:
    """Require a ``role`` string and a ``fingerprints`` list."""

    if not isinstance(params, Mapping):
        return False
    return isinstance(params.get("role"), str) and isinstance(params.get("fingerprints"), list)


def validate_rtp_parameters(params: Any) -> bool:
    return isinstance(params, Mapping)

"""Identifier parsing shared by the services."""

from __future__ import annotations

import uuid

from creator_escrow.domain.exceptions import NotFoundError


def parse_id(value: str | uuid.UUID, not_found: type[NotFoundError]) -> uuid.UUID:
    """Coerce ``value`` to a UUID; a malformed id can never match, so it is not found."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise not_found(str(value)) from None

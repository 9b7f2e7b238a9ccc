"""Identifier parsing shared by services and routers."""

from __future__ import annotations

import uuid

from vidtube.exceptions import InvalidArgumentError


def parse_id(value: object, label: str = "ID") -> str:
    """Return the canonical string form of a UUID reference.

    Raises:
        InvalidArgumentError: ``value`` is not a well-formed UUID.
    """
    if isinstance(value, uuid.UUID):
        return str(value)
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError) as e:
        msg = f"Invalid {label}"
        raise InvalidArgumentError(msg) from e

"""Metric name and tag helpers for the OpenTSDB line protocol."""

from __future__ import annotations

import logging
import socket
from typing import Callable, Optional

from .exceptions import HostResolutionError

logger = logging.getLogger(__name__)


def sanitize_name(name: str) -> str:
    """Replace spaces with hyphens; every other character is kept verbatim."""
    return name.replace(" ", "-")


def compose_tags(host_tag: str, static_tags: str, extra_tags: Optional[str] = None) -> str:
    """Join the host tag, static tags and optional extra tags.

    Empty groups are dropped and runs of whitespace collapse to a single
    space, so the result never has leading, trailing or doubled spaces.
    """
    tokens: list[str] = []
    for group in (host_tag, static_tags, extra_tags):
        if group:
            tokens.extend(group.split())
    return " ".join(tokens)


def resolve_hostname(resolver: Callable[[], str] = socket.gethostname) -> str:
    """Return the local host name.

    Raises:
        HostResolutionError: If the resolver fails or returns an empty name.
    """
    try:
        name = str(resolver() or "").strip()
    except Exception as exc:
        raise HostResolutionError(f"Cannot resolve local host name: {exc}") from exc
    if not name:
        raise HostResolutionError("Local host name is empty")
    return name


def host_tag(resolver: Callable[[], str] = socket.gethostname) -> str:
    """Return ``host=<hostname>``, or an empty string when resolution fails."""
    try:
        return f"host={sanitize_name(resolve_hostname(resolver))}"
    except HostResolutionError as exc:
        logger.warning("OpenTSDB reporter couldn't get host name, omitting host tag: %s", exc)
        return ""


__all__ = ["compose_tags", "host_tag", "resolve_hostname", "sanitize_name"]

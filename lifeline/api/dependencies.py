from __future__ import annotations

import logging
from typing import get_args

from fastapi import Request

from lifeline.application.dto.auth_dto import ActorContext
from lifeline.application.security.role_matrix import Role
from lifeline.container import Container

logger = logging.getLogger(__name__)

_KNOWN_ROLES = frozenset(get_args(Role))


def get_container(request: Request) -> Container:
    return request.app.state.container


def source_key(request: Request) -> str:
    """Client address for rate limiting, honouring the reverse-proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip and cf_ip.strip():
        return cf_ip.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def get_actor(request: Request) -> ActorContext:
    # Identity is asserted by the upstream gateway; this service does not authenticate.
    role = (request.headers.get("x-actor-role") or "anonymous").strip().lower()
    if role not in _KNOWN_ROLES:
        logger.warning("Unknown actor role %r treated as anonymous", role)
        role = "anonymous"
    actor_id = (request.headers.get("x-actor-id") or "").strip() or None
    return ActorContext(actor_id=actor_id, role=role, ip_address=source_key(request))

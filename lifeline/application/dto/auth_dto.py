from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from lifeline.application.security.role_matrix import Role


class ActorContext(BaseModel):
    """Pre-authenticated caller identity, as supplied by the identity provider."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    actor_id: str | None = Field(default=None, max_length=128)
    role: Role = "anonymous"
    ip_address: str | None = None

    @classmethod
    def system(cls) -> ActorContext:
        return cls(actor_id=None, role="system")

    @classmethod
    def anonymous(cls, ip_address: str | None = None) -> ActorContext:
        return cls(actor_id=None, role="anonymous", ip_address=ip_address)

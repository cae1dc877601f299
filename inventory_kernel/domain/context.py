"""
Actor context -- who is performing a domain action, and from where.

Passed explicitly by the caller into every mutating service call and
forwarded to the activity recorder and the log scope.  Services never
look it up.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

# Actor used for records created by the system itself (migrations, jobs)
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


@dataclass(frozen=True, slots=True)
class ActorContext:
    """The acting user plus request metadata."""

    actor_id: UUID
    ip_address: str | None = None
    user_agent: str | None = None
    # Caller-supplied request id; ties log lines and activity to one request
    correlation_id: str | None = None

    @classmethod
    def system(cls) -> ActorContext:
        return cls(actor_id=SYSTEM_ACTOR_ID)

    def as_context(self) -> dict[str, str | None]:
        """Request metadata for activity records."""
        context = {"ip_address": self.ip_address, "user_agent": self.user_agent}
        if self.correlation_id is not None:
            context["correlation_id"] = self.correlation_id
        return context

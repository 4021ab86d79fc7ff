"""
DocVault Actor Context — Who is performing an operation.

The authentication layer (outside this package) verifies the caller and
hands over {userId, role, hasDocumentAccess}. The engine trusts that value
as-is and every service call receives it explicitly; there is no ambient
"current user".

Usage:
    actor = ActorContext.from_claims({"userId": "u1", "role": "employee"})
    await propagator.update_access_control(folder_id, update, actor)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"


@dataclass(frozen=True)
class ActorContext:
    """Per-request actor identity, passed into every component call."""

    user_id: str
    role: str = ROLE_EMPLOYEE
    has_document_access: bool = False
    email: Optional[str] = None
    name: Optional[str] = None
    execution_id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "ActorContext":
        """
        Build a context from the auth provider payload.

        Accepts both the provider's camelCase keys and snake_case keys.
        """
        user_id = claims.get("userId", claims.get("user_id", claims.get("id")))
        if user_id is None:
            raise ValueError("Auth claims carry no user id")
        return cls(
            user_id=str(user_id),
            role=str(claims.get("role") or ROLE_EMPLOYEE),
            has_document_access=bool(
                claims.get("hasDocumentAccess", claims.get("has_document_access", False))
            ),
            email=claims.get("email"),
            name=claims.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "user_id": self.user_id,
            "role": self.role,
            "has_document_access": self.has_document_access,
            "execution_id": self.execution_id,
        }

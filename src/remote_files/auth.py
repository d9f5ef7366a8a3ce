"""Authentication context passed explicitly into the resource management core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from remote_files.gateway.models import Resource

ROLE_ADMIN = "admin"
DEFAULT_SESSION_COOKIE = "session"


@dataclass(frozen=True)
class AuthenticationContext:
    """Identity of the current user and the credential attached to every request.

    Attributes:
        username: Login name of the current user.
        role: Role reported by the backend (e.g. "admin" or "user").
        session_token: Value of the backend session cookie.
    """

    username: str
    role: str
    session_token: str

    @property
    def is_admin(self) -> bool:
        return self.role.strip().lower() == ROLE_ADMIN

    def can_modify(self, resource: Resource) -> bool:
        """Return True if the user may rename, move or delete the resource.

        Admins may modify anything. Other users may only modify files they
        uploaded or directories they created. The backend remains the
        authority; this only drives what the Presentation Layer offers.
        """
        if self.is_admin:
            return True
        return resource.owner == self.username

    def cookies(self, cookie_name: str = DEFAULT_SESSION_COOKIE) -> dict[str, str]:
        return {cookie_name: self.session_token}

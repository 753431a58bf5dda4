"""Permission helpers shared by the service layer."""
from typing import Optional

from app.core.deps import Principal
from app.core.errors import NotAuthenticated, NotAuthorized


def require_principal(principal: Optional[Principal], action: str = "do that") -> Principal:
    """Ensure someone is logged in. Raises NotAuthenticated otherwise."""
    if principal is None:
        raise NotAuthenticated(f"You must be logged in to {action}")
    return principal


def require_admin(principal: Optional[Principal], action: str = "do that") -> Principal:
    """Ensure the principal is an administrator."""
    principal = require_principal(principal, action)
    if not principal.is_admin:
        raise NotAuthorized(f"Admin access required to {action}")
    return principal


def can_view_unapproved(principal: Optional[Principal], submitted_by_id: str) -> bool:
    """Admins see every pumpkin; submitters see their own."""
    if principal is None:
        return False
    return principal.is_admin or principal.id == submitted_by_id

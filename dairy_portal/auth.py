from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"


@dataclass(frozen=True)
class Principal:
    id: int
    username: str
    role: Role
    active: bool

    @property
    def is_admin(self) -> bool:
        return self.active and self.role == Role.ADMIN


def can_clear_balances(principal: Principal) -> bool:
    """Clearing a balance writes off money, so it is limited to active administrators."""
    return principal.is_admin


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
        return principal

    return _dep


staff_access = require_role(Role.ADMIN, Role.OPERATOR)
admin_access = require_role(Role.ADMIN)

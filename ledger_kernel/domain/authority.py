"""
Authority -- who may lock a period, and who may post into or unlock one.

Responsibility:
    Expresses period-lock permissions as capability checks
    ``(ActingUser) -> bool``.  PeriodService receives the checks by
    injection, so policy can change without touching posting logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from typing import Callable, Iterable

from ledger_kernel.domain.dtos import ActingUser, Role

RolePolicy = Callable[[ActingUser], bool]

DEFAULT_OVERRIDE_ROLES: tuple[str, ...] = (Role.OWNER.value,)
DEFAULT_LOCK_ROLES: tuple[str, ...] = (Role.OWNER.value, Role.ACCOUNTANT.value)


def role_policy(roles: Iterable[Role | str]) -> RolePolicy:
    """
    Build a check that grants the capability to the given roles.

    Role names compare case-insensitively.
    """
    allowed = frozenset(
        (r.value if isinstance(r, Role) else str(r)).lower() for r in roles
    )

    def check(actor: ActingUser) -> bool:
        return actor.role_name.lower() in allowed

    return check


# Post into, and unlock, a locked period.
can_override_lock: RolePolicy = role_policy(DEFAULT_OVERRIDE_ROLES)

can_lock_period: RolePolicy = role_policy(DEFAULT_LOCK_ROLES)


def never_override(actor: ActingUser) -> bool:
    """Policy under which nobody posts into a locked period."""
    return False

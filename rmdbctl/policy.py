"""Privilege policy: decides whether a command may run with escalation."""

from __future__ import annotations

from rmdbctl.exceptions import ExecError, MissingEscalation, NotAllowed
from rmdbctl.models import TrustLevel


def authorize(requires_privilege: bool, trust: TrustLevel, escalation_available: bool) -> None:
    """Raise if the operation is not permitted; return None otherwise.

    Pure function: no I/O, no state. Unprivileged operations are always allowed.
    """
    if not requires_privilege:
        return
    if trust is not TrustLevel.ADMIN:
        raise NotAllowed("Admin action refused: switch to Admin mode")
    if not escalation_available:
        raise MissingEscalation("sudo is required in Admin mode but was not found")


def is_authorized(requires_privilege: bool, trust: TrustLevel, escalation_available: bool) -> bool:
    try:
        authorize(requires_privilege, trust, escalation_available)
    except ExecError:
        return False
    return True

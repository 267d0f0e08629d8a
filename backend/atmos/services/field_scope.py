"""
Field scoping: which solicitud fields each role may write.
"""

from typing import Any, Dict, FrozenSet, Mapping

from atmos.core.security import UserRole

# Drivers close out visits in the field; everything else about a solicitud is
# owned by the dispatch office.
DRIVER_WRITABLE_FIELDS: FrozenSet[str] = frozenset(
    {"estado", "coordenadas", "fecha_realizacion", "motivo_no_realizacion"}
)

UNSCOPED_ROLES: FrozenSet[str] = frozenset({UserRole.ADMIN, UserRole.DISPATCHER})


def scope_patch(role: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Narrow ``patch`` to the fields ``role`` may write.

    Admins and dispatchers get the patch back unchanged. Any other role is
    limited to ``DRIVER_WRITABLE_FIELDS``; other keys are dropped without
    error, so a driver client may submit its whole local draft. The result
    may be empty, which callers treat as a no-op update.
    """
    if role in UNSCOPED_ROLES:
        return dict(patch)
    return {key: value for key, value in patch.items() if key in DRIVER_WRITABLE_FIELDS}

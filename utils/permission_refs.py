"""
Permission references come in two shapes: a bare identifier (an id or a name
taken from token claims or an unloaded relationship) or a resolved Permission
row. Everything that reads permissions goes through `permission_key` so both
shapes are handled the same way.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union


@dataclass(frozen=True)
class PermissionId:
    value: Union[int, str]


@dataclass(frozen=True)
class ResolvedPermission:
    permission: Any  # models.roles.Permission or any object with a `name`


PermissionRef = Union[PermissionId, ResolvedPermission]


def to_ref(entry: Any) -> PermissionRef:
    if isinstance(entry, (PermissionId, ResolvedPermission)):
        return entry
    if isinstance(entry, (str, int)):
        return PermissionId(entry)
    if isinstance(entry, dict):
        if entry.get("name") is not None:
            return ResolvedPermission(_NamedPermission(entry["name"]))
        return PermissionId(entry.get("id"))
    return ResolvedPermission(entry)


def permission_key(ref: PermissionRef) -> Optional[Union[int, str]]:
    """Name for a resolved permission, the identifier itself otherwise."""
    if isinstance(ref, ResolvedPermission):
        if getattr(ref.permission, "is_deleted", False):
            return None
        return getattr(ref.permission, "name", None)
    return ref.value


def permission_keys(entries: Optional[Iterable[Any]]) -> list:
    if not entries:
        return []
    keys = []
    for entry in entries:
        key = permission_key(to_ref(entry))
        if key is not None:
            keys.append(key)
    return keys


@dataclass(frozen=True)
class _NamedPermission:
    name: str

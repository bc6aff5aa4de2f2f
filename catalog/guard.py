"""
Ownership and role checks for mutating users, books and reviews.

The predicate has no side effects; callers turn a False result into an
AuthorizationFailure.
"""

from enum import Enum
from typing import Optional

from .models import Identity


class Action(str, Enum):
    """Mutating actions subject to authorization."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ResourceKind(str, Enum):
    """Kinds of resources an identity can mutate."""
    BOOK = "book"
    REVIEW = "review"
    USER = "user"


def can_mutate(
    identity: Optional[Identity],
    resource_owner_id: Optional[str],
    action: Action,
    resource_kind: ResourceKind
) -> bool:
    """
    Decide whether an identity may perform an action on a resource.

    Args:
        identity: Acting identity, None when unauthenticated
        resource_owner_id: Owner of the resource (review author, target user id)
        action: Requested action
        resource_kind: Kind of the resource

    Returns:
        True if the action is allowed
    """
    if identity is None:
        return False

    is_owner = resource_owner_id is not None and str(resource_owner_id) == identity.id

    if resource_kind == ResourceKind.BOOK:
        return identity.is_admin

    if resource_kind == ResourceKind.REVIEW:
        if action == Action.CREATE:
            return True
        if action == Action.UPDATE:
            return is_owner
        return is_owner or identity.is_admin

    if resource_kind == ResourceKind.USER:
        return is_owner or identity.is_admin

    return False

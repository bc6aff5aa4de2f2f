"""
Tests for the ownership and role guard.
"""

import pytest
from bson import ObjectId

from catalog.guard import Action, ResourceKind, can_mutate
from catalog.models import Identity, UserRole

OWNER = str(ObjectId())


@pytest.fixture
def owner():
    return Identity(id=OWNER, role=UserRole.USER)


@pytest.fixture
def stranger():
    return Identity(id=str(ObjectId()), role=UserRole.USER)


@pytest.fixture
def admin():
    return Identity(id=str(ObjectId()), role=UserRole.ADMIN)


class TestBookRules:

    @pytest.mark.parametrize("action", list(Action))
    def test_admin_only(self, action, admin, owner):
        assert can_mutate(admin, None, action, ResourceKind.BOOK)
        assert not can_mutate(owner, OWNER, action, ResourceKind.BOOK)


class TestReviewRules:

    def test_any_identity_can_create(self, stranger):
        assert can_mutate(stranger, stranger.id, Action.CREATE, ResourceKind.REVIEW)

    def test_update_owner_only(self, owner, stranger, admin):
        assert can_mutate(owner, OWNER, Action.UPDATE, ResourceKind.REVIEW)
        assert not can_mutate(stranger, OWNER, Action.UPDATE, ResourceKind.REVIEW)
        assert not can_mutate(admin, OWNER, Action.UPDATE, ResourceKind.REVIEW)

    def test_delete_owner_or_admin(self, owner, stranger, admin):
        assert can_mutate(owner, OWNER, Action.DELETE, ResourceKind.REVIEW)
        assert can_mutate(admin, OWNER, Action.DELETE, ResourceKind.REVIEW)
        assert not can_mutate(stranger, OWNER, Action.DELETE, ResourceKind.REVIEW)

    def test_owner_id_may_be_object_id(self, owner):
        assert can_mutate(owner, ObjectId(OWNER), Action.UPDATE, ResourceKind.REVIEW)


class TestUserRules:

    @pytest.mark.parametrize("action", [Action.UPDATE, Action.DELETE])
    def test_self_or_admin(self, action, owner, stranger, admin):
        assert can_mutate(owner, OWNER, action, ResourceKind.USER)
        assert can_mutate(admin, OWNER, action, ResourceKind.USER)
        assert not can_mutate(stranger, OWNER, action, ResourceKind.USER)


@pytest.mark.parametrize("kind", list(ResourceKind))
def test_unauthenticated_never_allowed(kind):
    assert not can_mutate(None, OWNER, Action.DELETE, kind)

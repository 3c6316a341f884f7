"""Tests for role management and the composite-role graph."""
import pytest

from realmsync.core.exceptions import CompositeRoleCycleError, RoleNotFoundError
from realmsync.core.roles import RoleService


@pytest.fixture()
def roles(store):
    return RoleService(store)


def test_add_role_is_idempotent(roles):
    first = roles.add_role("r1", "editor", description="first")
    second = roles.add_role("r1", "editor", description="second")

    assert first.id == second.id
    assert second.description == "first"


def test_realm_and_client_roles_are_separate(roles):
    realm_role = roles.add_role("r1", "viewer")
    client_role = roles.add_role("r1", "viewer", client_uuid="client-1")

    assert realm_role.id != client_role.id
    assert [r.id for r in roles.realm_roles("r1")] == [realm_role.id]
    assert [r.id for r in roles.client_roles("r1", "client-1")] == [client_role.id]
    assert roles.get_role("r1", "viewer", "client-1").id == client_role.id


def test_effective_roles_follow_composites(roles):
    a = roles.add_role("r1", "a")
    b = roles.add_role("r1", "b")
    c = roles.add_role("r1", "c")
    roles.add_composite("r1", a, b)
    roles.add_composite("r1", b, c)

    assert roles.effective_role_ids(roles.get_role("r1", "a")) == {a.id, b.id, c.id}


def test_composite_cycle_rejected(roles):
    a = roles.add_role("r1", "a")
    b = roles.add_role("r1", "b")
    c = roles.add_role("r1", "c")
    roles.add_composite("r1", a, b)
    roles.add_composite("r1", b, c)

    with pytest.raises(CompositeRoleCycleError):
        roles.add_composite("r1", c, a)
    with pytest.raises(CompositeRoleCycleError):
        roles.add_composite("r1", a, a)
    assert roles.get_role("r1", "c").composite_ids == set()


def test_add_composite_twice_is_noop(roles):
    a = roles.add_role("r1", "a")
    b = roles.add_role("r1", "b")

    roles.add_composite("r1", a, b)
    parent = roles.add_composite("r1", a, b)

    assert parent.composite_ids == {b.id}


def test_remove_composite(roles):
    a = roles.add_role("r1", "a")
    b = roles.add_role("r1", "b")
    roles.add_composite("r1", a, b)

    assert roles.remove_composite("r1", a, b).composite_ids == set()


def test_add_composite_to_missing_parent(roles):
    a = roles.add_role("r1", "a")
    b = roles.add_role("r1", "b")
    roles.store.delete("r1", "role", a.id)

    with pytest.raises(RoleNotFoundError):
        roles.add_composite("r1", a, b)

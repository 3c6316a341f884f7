"""Tests for realm bootstrap: default resources, postponement and idempotence."""
import pytest

from realmsync.core import models
from realmsync.core.bootstrap import RealmBootstrapper
from realmsync.core.events import REALM_POST_CREATE
from realmsync.core.exceptions import (
    CircularDependencyError,
    ConfigurationError,
    DefaultRoleNameExhaustedError,
    RealmNotFoundError,
)
from realmsync.core.models import (
    Client,
    FederationMapper,
    IdentityProvider,
    IdentityProviderFederation,
    RealmImport,
)
from realmsync.core.realm import RealmService
from realmsync.core.registry import (
    ADMIN_CONSOLE,
    BROKER_SERVICE,
    DEFAULT_RESOURCES,
    REALM_ADMIN_MANAGEMENT,
    AccountRoles,
    AdminRoles,
    DefaultResource,
    resource_names,
)
from realmsync.core.roles import RoleService


@pytest.fixture()
def realms(store):
    return RealmService(store)


@pytest.fixture()
def roles(store):
    return RoleService(store)


@pytest.fixture()
def bootstrapper(store, events):
    return RealmBootstrapper(store, events)


@pytest.fixture()
def master(realms, bootstrapper):
    realm = realms.create_realm_record("master")
    return bootstrapper.ensure_defaults(realm).realm


def _snapshot(store, realm_id):
    kinds = (models.CLIENT, models.ROLE, models.CLIENT_SCOPE, models.AUTH_FLOW, models.REQUIRED_ACTION)
    return {kind: sorted(e.id for e in store.list_children(realm_id, kind)) for kind in kinds}


# ─────────────────────────────────────────────────────────────────────────────
# Administration realm
# ─────────────────────────────────────────────────────────────────────────────
def test_master_realm_defaults(master, realms, roles):
    admin = roles.get_role(master.id, AdminRoles.ADMIN)
    create_realm = roles.get_role(master.id, AdminRoles.CREATE_REALM)
    master_client = realms.get_client(master.id, "master-realm")

    assert admin is not None and create_realm.id in admin.composite_ids
    assert master.master_admin_client_id == master_client.id
    assert realms.get_client(master.id, "realm-management") is None
    assert master.default_role_id == roles.get_role(master.id, "default-roles-master").id

    view_users = roles.get_role(master.id, AdminRoles.VIEW_USERS, master_client.id)
    query_users = roles.get_role(master.id, AdminRoles.QUERY_USERS, master_client.id)
    assert view_users.id in admin.composite_ids
    assert query_users.id in view_users.composite_ids
    assert roles.get_role(master.id, AdminRoles.IMPERSONATION, master_client.id) is not None


def test_every_resource_reported_once(realms, bootstrapper):
    report = bootstrapper.ensure_defaults(realms.create_realm_record("master"))

    reported = report.created + report.verified + report.skipped
    assert sorted(reported) == sorted(resource_names())
    assert report.postponed == []


def test_ensure_defaults_is_idempotent(master, store, bootstrapper):
    before = _snapshot(store, master.id)

    report = bootstrapper.ensure_defaults(master)

    assert report.created == []
    assert _snapshot(store, master.id) == before


def test_post_create_event_published(master, recorder):
    assert recorder.types() == [REALM_POST_CREATE]
    assert recorder.events[0].realm_id == master.id


def test_missing_realm_rejected(bootstrapper):
    with pytest.raises(RealmNotFoundError):
        bootstrapper.ensure_defaults(models.Realm(name="ghost"))


# ─────────────────────────────────────────────────────────────────────────────
# Regular realms
# ─────────────────────────────────────────────────────────────────────────────
def test_regular_realm_defaults(master, realms, roles, bootstrapper):
    demo = bootstrapper.ensure_defaults(realms.create_realm_record("Demo")).realm

    # Management client of the realm lives in the administration realm
    demo_admin_client = realms.get_client(master.id, "Demo-realm")
    assert demo.master_admin_client_id == demo_admin_client.id
    master_admin = roles.get_role(master.id, AdminRoles.ADMIN)
    manage_users = roles.get_role(master.id, "manage-users", demo_admin_client.id)
    assert manage_users.id in master_admin.composite_ids

    management = realms.get_client(demo.id, "realm-management")
    realm_admin = roles.get_role(demo.id, AdminRoles.REALM_ADMIN, management.id)
    impersonation = roles.get_role(demo.id, AdminRoles.IMPERSONATION, management.id)
    assert impersonation.id in realm_admin.composite_ids

    default_role = roles.get_role(demo.id, "default-roles-demo")
    account = realms.get_client(demo.id, "account")
    manage_account = roles.get_role(demo.id, AccountRoles.MANAGE_ACCOUNT, account.id)
    offline = roles.get_role(demo.id, "offline_access")
    assert demo.default_role_id == default_role.id
    assert {manage_account.id, offline.id} <= default_role.composite_ids
    assert roles.get_role(demo.id, AccountRoles.DELETE_ACCOUNT, account.id) is not None

    console = realms.get_client(demo.id, "security-admin-console")
    assert console.protocol_mapper("locale") is not None
    assert realm_admin.id in console.scope_role_ids
    for client_id in ("account-console", "broker", "admin-cli"):
        assert realms.get_client(demo.id, client_id) is not None


def test_regular_realm_requires_admin_realm(realms, bootstrapper):
    with pytest.raises(RealmNotFoundError):
        bootstrapper.ensure_defaults(realms.create_realm_record("orphan"))


def test_missing_admin_roles_are_backfilled(master, realms, roles, bootstrapper):
    demo = bootstrapper.ensure_defaults(realms.create_realm_record("demo")).realm
    management = realms.get_client(demo.id, "realm-management")
    manage_events = roles.get_role(demo.id, "manage-events", management.id)
    roles.store.delete(demo.id, models.ROLE, manage_events.id)

    report = bootstrapper.ensure_defaults(demo)

    assert REALM_ADMIN_MANAGEMENT in report.verified
    restored = roles.get_role(demo.id, "manage-events", management.id)
    realm_admin = roles.get_role(demo.id, AdminRoles.REALM_ADMIN, management.id)
    assert restored.id in realm_admin.composite_ids


# ─────────────────────────────────────────────────────────────────────────────
# Default role naming
# ─────────────────────────────────────────────────────────────────────────────
def test_default_role_name_collision_uses_suffix(master, realms, roles, bootstrapper):
    realm = realms.create_realm_record("acme")
    roles.add_role(realm.id, "default-roles-acme")
    roles.add_role(realm.id, "default-roles-acme-1")

    acme = bootstrapper.ensure_defaults(realm).realm

    assert roles.get_role_by_id(acme.id, acme.default_role_id).name == "default-roles-acme-2"


def test_default_role_name_avoids_imported_roles(master, realms, roles, bootstrapper):
    realm = realms.create_realm_record("acme")
    realm_import = RealmImport(realm="acme", realm_roles=["default-roles-acme"])

    acme = bootstrapper.ensure_defaults(realm, realm_import).realm

    assert roles.get_role_by_id(acme.id, acme.default_role_id).name == "default-roles-acme-1"
    # The imported role itself still exists as a plain realm role
    assert roles.get_role(acme.id, "default-roles-acme") is not None


def test_default_role_from_import(master, realms, roles, bootstrapper):
    realm = realms.create_realm_record("acme")

    acme = bootstrapper.ensure_defaults(realm, RealmImport(realm="acme", default_role="everyone")).realm

    assert roles.get_role_by_id(acme.id, acme.default_role_id).name == "everyone"


def test_default_role_name_exhausted(master, realms, roles, store, monkeypatch):
    monkeypatch.setattr(RealmBootstrapper, "max_default_role_suffix", 2)
    realm = realms.create_realm_record("acme")
    for name in ("default-roles-acme", "default-roles-acme-1", "default-roles-acme-2"):
        roles.add_role(realm.id, name)

    with pytest.raises(DefaultRoleNameExhaustedError):
        RealmBootstrapper(store).ensure_defaults(realm)


# ─────────────────────────────────────────────────────────────────────────────
# Imports and postponement
# ─────────────────────────────────────────────────────────────────────────────
def test_import_declared_client_postpones_dependent_resources(master, realms, roles, bootstrapper):
    realm = realms.create_realm_record("acme")
    realm_import = RealmImport(
        realm="acme",
        clients=[Client(client_id="realm-management", realm_id="", bearer_only=True)],
        client_roles={"realm-management": ["custom-admin"], "unknown-client": ["x"]},
    )

    report = bootstrapper.ensure_defaults(realm, realm_import)

    assert report.postponed == ["realm-admin-management", "impersonation", "admin-cli"]
    assert REALM_ADMIN_MANAGEMENT in report.verified
    management = realms.get_client(realm.id, "realm-management")
    assert roles.get_role(realm.id, "custom-admin", management.id) is not None
    assert roles.get_role(realm.id, AdminRoles.REALM_ADMIN, management.id) is not None
    assert len([c for c in realms.store.list_children(realm.id, models.CLIENT)
                if c.client_id == "realm-management"]) == 1


def test_import_content_creates_providers_and_federations(master, realms, store, bootstrapper):
    realm = realms.create_realm_record("acme")
    federation = IdentityProviderFederation(
        alias="edugain",
        realm_id="",
        url="https://mds.example/feed",
        mappers=[FederationMapper(name="m1", mapper_type="saml-role-idp-mapper", federation_id="")],
    )
    realm_import = RealmImport(
        realm="acme",
        identity_providers=[IdentityProvider(alias="corp", realm_id="", provider_id="oidc")],
        federations=[federation],
        client_scopes=["custom-scope"],
    )

    report = bootstrapper.ensure_defaults(realm, realm_import)

    assert "default-client-scopes" in report.skipped
    providers = store.list_children(realm.id, models.IDENTITY_PROVIDER)
    assert [p.alias for p in providers] == ["corp"]
    stored = store.list_children(realm.id, models.FEDERATION)[0]
    assert stored.realm_id == realm.id
    assert stored.mappers[0].federation_id == stored.id
    assert {s.name for s in store.list_children(realm.id, models.CLIENT_SCOPE)} == {"custom-scope", "offline_access"}


def test_bootstrap_without_import_skips_import_content(master, realms, bootstrapper):
    report = bootstrapper.ensure_defaults(realms.create_realm_record("acme"))

    assert "import-content" in report.skipped
    assert report.postponed == []


def test_circular_dependency_detected(master, realms, store):
    resources = (
        DefaultResource(BROKER_SERVICE, depends_on=(ADMIN_CONSOLE,)),
        DefaultResource(ADMIN_CONSOLE, depends_on=(BROKER_SERVICE,)),
    )
    bootstrapper = RealmBootstrapper(store, resources=resources)

    with pytest.raises(CircularDependencyError) as exc:
        bootstrapper.ensure_defaults(realms.create_realm_record("acme"))
    assert exc.value.unresolved == [BROKER_SERVICE, ADMIN_CONSOLE]


def test_unknown_resource_rejected(store):
    with pytest.raises(ConfigurationError):
        RealmBootstrapper(store, resources=DEFAULT_RESOURCES + (DefaultResource("ldap-sync"),))

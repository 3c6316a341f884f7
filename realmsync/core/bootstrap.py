"""Realm bootstrap orchestration.

Walks the default-resource table in order, creating whatever a realm is
missing and verifying whatever is already there. Resources whose dependencies
are not yet satisfied are postponed and retried once after the main pass.
"""
from __future__ import annotations
import copy
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from . import models
from .events import REALM_POST_CREATE, ChangeEvent, EventBus
from .exceptions import (
    CircularDependencyError,
    ConfigurationError,
    DefaultRoleNameExhaustedError,
    RealmNotFoundError,
    RoleNotFoundError,
)
from .models import (
    AuthenticationFlow,
    Client,
    ClientScope,
    ProtocolMapper,
    Realm,
    RealmImport,
    RequiredAction,
    Role,
)
from .providers import ProviderTypeRegistry
from .realm import RealmService
from .registry import (
    ACCOUNT_CONSOLE_CLIENT_ID,
    ACCOUNT_MANAGEMENT,
    ACCOUNT_MANAGEMENT_CLIENT_ID,
    ADMIN_CLI,
    ADMIN_CLI_CLIENT_ID,
    ADMIN_CONSOLE,
    ADMIN_CONSOLE_CLIENT_ID,
    ADMIN_CONSOLE_LOCALE_MAPPER,
    AUTH_ADMIN_URL_PROP,
    AUTH_BASE_URL_PROP,
    AUTHENTICATION_FLOWS,
    BROKER_SERVICE,
    BROKER_SERVICE_CLIENT_ID,
    BROKER_SERVICE_ROLES,
    DEFAULT_ADMIN_REALM,
    DEFAULT_AUTHENTICATION_FLOWS,
    DEFAULT_CLIENT_SCOPES,
    DEFAULT_CLIENT_SCOPES_RESOURCE,
    DEFAULT_REQUIRED_ACTIONS,
    DEFAULT_RESOURCES,
    DEFAULT_ROLE,
    DEFAULT_ROLES_ROLE_PREFIX,
    DELETE_ACCOUNT,
    IMPERSONATION,
    IMPORT_CONTENT,
    MASTER_ADMIN_MANAGEMENT,
    MAX_DEFAULT_ROLE_SUFFIX,
    OFFLINE_ACCESS,
    OFFLINE_ACCESS_ROLE,
    REALM_ADMIN_MANAGEMENT,
    REALM_DEFAULTS,
    REALM_MANAGEMENT_CLIENT_ID,
    REQUIRED_ACTIONS,
    AccountRoles,
    AdminRoles,
    DefaultResource,
    master_realm_admin_client_id,
    role_description,
)
from .roles import RoleService
from .store import Store
from .validators import validate_provider_alias

logger = logging.getLogger(__name__)

CREATED = "created"
VERIFIED = "verified"
SKIPPED = "skipped"

# Marks a realm whose baseline settings were applied once already
DEFAULTS_APPLIED_ATTRIBUTE = "bootstrap.defaultsApplied"


@dataclass
class BootstrapReport:
    """Outcome of one ``ensure_defaults`` call."""
    realm: Realm
    created: list[str] = field(default_factory=list)
    verified: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    postponed: list[str] = field(default_factory=list)

    def record(self, resource: str, status: str) -> None:
        {CREATED: self.created, VERIFIED: self.verified, SKIPPED: self.skipped}[status].append(resource)


@dataclass
class _BootstrapRun:
    realm: Realm
    realm_import: Optional[RealmImport]
    admin_realm_name: str
    completed: set[str] = field(default_factory=set)

    @property
    def is_admin_realm(self) -> bool:
        return self.realm.name == self.admin_realm_name


class RealmBootstrapper:
    """Ensures every realm carries its default security resources.

    Attributes:
        max_default_role_suffix: Upper bound of the numeric suffix tried when
            the default role name collides with an existing realm role
    """

    max_default_role_suffix = MAX_DEFAULT_ROLE_SUFFIX

    def __init__(
        self,
        store: Store,
        events: Optional[EventBus] = None,
        admin_realm_name: str = DEFAULT_ADMIN_REALM,
        resources: tuple[DefaultResource, ...] = DEFAULT_RESOURCES,
        providers: Optional[ProviderTypeRegistry] = None,
    ):
        """Initialize the bootstrapper.

        Args:
            store: Persistence collaborator
            events: Observer list receiving ``realm.post_create``
            admin_realm_name: Name of the administration realm
            resources: Ordered default-resource table
            providers: Provider types used to validate imported providers

        Raises:
            ConfigurationError: If the table names a resource with no setup step
        """
        self.store = store
        self.events = events or EventBus()
        self.admin_realm_name = admin_realm_name
        self.providers = providers or ProviderTypeRegistry()
        self.realms = RealmService(store)
        self.roles = RoleService(store)
        self._setup_steps: dict[str, Callable[[_BootstrapRun], str]] = {
            REALM_DEFAULTS: self._setup_realm_defaults,
            DEFAULT_ROLE: self._setup_default_role,
            MASTER_ADMIN_MANAGEMENT: self._setup_master_admin_management,
            REALM_ADMIN_MANAGEMENT: self._setup_realm_admin_management,
            ACCOUNT_MANAGEMENT: self._setup_account_management,
            IMPERSONATION: self._setup_impersonation,
            BROKER_SERVICE: self._setup_broker_service,
            ADMIN_CONSOLE: self._setup_admin_console,
            ADMIN_CLI: self._setup_admin_cli,
            OFFLINE_ACCESS: self._setup_offline_access,
            DEFAULT_CLIENT_SCOPES_RESOURCE: self._setup_default_client_scopes,
            IMPORT_CONTENT: self._setup_import_content,
            ADMIN_CONSOLE_LOCALE_MAPPER: self._setup_admin_console_locale_mapper,
            AUTHENTICATION_FLOWS: self._setup_authentication_flows,
            REQUIRED_ACTIONS: self._setup_required_actions,
            DELETE_ACCOUNT: self._setup_delete_account,
        }
        unknown = [r.name for r in resources if r.name not in self._setup_steps]
        if unknown:
            raise ConfigurationError(f"No setup step for default resource(s): {', '.join(unknown)}")
        self.resources = tuple(resources)

    # ─────────────────────────────────────────────────────────────────────────
    # Orchestration
    # ─────────────────────────────────────────────────────────────────────────
    def ensure_defaults(self, realm: Realm, realm_import: Optional[RealmImport] = None) -> BootstrapReport:
        """Create missing default resources and verify present ones.

        Safe to call repeatedly: a second call creates nothing.

        Args:
            realm: Realm to bootstrap (must already be persisted)
            realm_import: What the import document declares, when importing

        Returns:
            BootstrapReport with the realm as stored after bootstrap

        Raises:
            CircularDependencyError: If postponed resources stay unresolvable
            DefaultRoleNameExhaustedError: If no default role name is free
            RealmNotFoundError: If the administration realm does not exist
        """
        stored = self.realms.get_realm(realm.id)
        if stored is None:
            raise RealmNotFoundError(f"Realm '{realm.name}' not found")
        realm = stored
        run = _BootstrapRun(
            realm=realm,
            realm_import=realm_import,
            admin_realm_name=self.admin_realm_name,
        )
        report = BootstrapReport(realm=realm)
        logger.info("[bootstrap] Ensuring defaults for realm '%s'", realm.name)

        postponed: list[DefaultResource] = []
        for resource in self.resources:
            blocked = self._blocked_by(resource, run)
            if blocked:
                logger.debug("[bootstrap] Postponing '%s' (waiting for %s)", resource.name, ", ".join(blocked))
                postponed.append(resource)
                report.postponed.append(resource.name)
                continue
            self._run_step(resource, run, report)

        unresolved = []
        for resource in postponed:
            if self._blocked_by(resource, run):
                unresolved.append(resource.name)
                continue
            self._run_step(resource, run, report)
        if unresolved:
            raise CircularDependencyError(unresolved)

        report.realm = run.realm
        self.events.publish(ChangeEvent(
            type=REALM_POST_CREATE,
            realm_id=run.realm.id,
            resource_id=run.realm.id,
            details={"realm": run.realm.name, "created": list(report.created)},
        ))
        logger.info(
            "[bootstrap] Realm '%s' ready (%d created, %d verified)",
            run.realm.name, len(report.created), len(report.verified),
        )
        return report

    def _blocked_by(self, resource: DefaultResource, run: _BootstrapRun) -> list[str]:
        required = list(resource.depends_on)
        if self._declared_by_import(resource, run):
            required.append(IMPORT_CONTENT)
        return [name for name in required if name not in run.completed]

    def _declared_by_import(self, resource: DefaultResource, run: _BootstrapRun) -> bool:
        if run.realm_import is None or resource.declared_client is None:
            return False
        client_id = resource.declared_client(run.realm.name, run.admin_realm_name)
        return client_id is not None and run.realm_import.has_client(client_id)

    def _run_step(self, resource: DefaultResource, run: _BootstrapRun, report: BootstrapReport) -> None:
        status = self._setup_steps[resource.name](run)
        run.completed.add(resource.name)
        report.record(resource.name, status)
        logger.debug("[bootstrap] %s: %s", resource.name, status)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────
    def _save_realm(self, run: _BootstrapRun) -> None:
        run.realm = self.realms.save_realm(run.realm)

    def _admin_realm(self, run: _BootstrapRun) -> Realm:
        if run.is_admin_realm:
            return run.realm
        admin_realm = self.realms.get_realm_by_name(run.admin_realm_name)
        if admin_realm is None:
            raise RealmNotFoundError(f"Administration realm '{run.admin_realm_name}' not found")
        return admin_realm

    def _default_role(self, run: _BootstrapRun) -> Role:
        role = None
        if run.realm.default_role_id:
            role = self.roles.get_role_by_id(run.realm.id, run.realm.default_role_id)
        if role is None:
            raise RoleNotFoundError(f"Default role of realm '{run.realm.name}' not found")
        return role

    def _client_scope(self, realm_id: str, name: str) -> Optional[ClientScope]:
        for scope in self.store.list_children(realm_id, models.CLIENT_SCOPE):
            if scope.name == name:
                return scope
        return None

    def _ensure_admin_roles(self, realm_id: str, client: Client, parent: Role) -> None:
        """Add missing admin roles to ``client`` and composite them under ``parent``."""
        for name in AdminRoles.ALL_REALM_ROLES:
            if self.roles.get_role(realm_id, name, client.id) is None:
                role = self.roles.add_role(realm_id, name, client.id, role_description(name))
                self.roles.add_composite(realm_id, parent, role)
        for parent_name, implied in AdminRoles.QUERY_COMPOSITES.items():
            view_role = self.roles.get_role(realm_id, parent_name, client.id)
            if view_role is None:
                continue
            for child_name in implied:
                child = self.roles.get_role(realm_id, child_name, client.id)
                if child is not None:
                    self.roles.add_composite(realm_id, view_role, child)

    # ─────────────────────────────────────────────────────────────────────────
    # Setup steps
    # ─────────────────────────────────────────────────────────────────────────
    def _setup_realm_defaults(self, run: _BootstrapRun) -> str:
        realm = run.realm
        if realm.attributes.get(DEFAULTS_APPLIED_ATTRIBUTE) == "true":
            return VERIFIED
        realm.ssl_required = "external"
        realm.brute_force_protected = False
        realm.max_failure_wait_seconds = 900
        realm.failure_factor = 30
        realm.login_with_email_allowed = True
        if not realm.events_listeners:
            realm.events_listeners = ["logging"]
        realm.attributes[DEFAULTS_APPLIED_ATTRIBUTE] = "true"
        self._save_realm(run)
        return CREATED

    def _setup_default_role(self, run: _BootstrapRun) -> str:
        realm = run.realm
        if realm.default_role_id and self.roles.get_role_by_id(realm.id, realm.default_role_id):
            return VERIFIED
        name = self._default_role_name(run)
        role = self.roles.add_role(realm.id, name, description=role_description("default-roles"))
        realm.default_role_id = role.id
        self._save_realm(run)
        logger.info("[bootstrap] Default role '%s' created for realm '%s'", name, realm.name)
        return CREATED

    def _default_role_name(self, run: _BootstrapRun) -> str:
        if run.realm_import is not None and run.realm_import.default_role:
            return run.realm_import.default_role
        base = f"{DEFAULT_ROLES_ROLE_PREFIX}-{run.realm.name.lower()}"
        if not self._role_name_taken(run, base):
            return base
        for suffix in range(1, self.max_default_role_suffix + 1):
            candidate = f"{base}-{suffix}"
            if not self._role_name_taken(run, candidate):
                return candidate
        raise DefaultRoleNameExhaustedError(
            f"No free default role name for realm '{run.realm.name}' "
            f"(tried suffixes up to {self.max_default_role_suffix})"
        )

    def _role_name_taken(self, run: _BootstrapRun, name: str) -> bool:
        if self.roles.get_role(run.realm.id, name) is not None:
            return True
        return run.realm_import is not None and run.realm_import.has_realm_role(name)

    def _setup_master_admin_management(self, run: _BootstrapRun) -> str:
        admin_realm = self._admin_realm(run)
        admin_role = self.roles.add_role(
            admin_realm.id, AdminRoles.ADMIN, description=role_description(AdminRoles.ADMIN)
        )
        if run.is_admin_realm:
            create_realm = self.roles.add_role(
                admin_realm.id, AdminRoles.CREATE_REALM, description=role_description(AdminRoles.CREATE_REALM)
            )
            self.roles.add_composite(admin_realm.id, admin_role, create_realm)

        client_id = master_realm_admin_client_id(run.realm.name)
        client = self.realms.get_client(admin_realm.id, client_id)
        status = VERIFIED
        if client is None:
            client = self.realms.create_management_client(admin_realm.id, client_id)
            client.name = f"{run.realm.name} Realm"
            client = self.realms.save_client(client)
            status = CREATED
        self._ensure_admin_roles(admin_realm.id, client, admin_role)

        if run.realm.master_admin_client_id != client.id:
            run.realm.master_admin_client_id = client.id
            self._save_realm(run)
        return status

    def _setup_realm_admin_management(self, run: _BootstrapRun) -> str:
        if run.is_admin_realm:
            # The administration realm is managed through its master admin client
            return SKIPPED
        realm_id = run.realm.id
        client = self.realms.get_client(realm_id, REALM_MANAGEMENT_CLIENT_ID)
        status = VERIFIED
        if client is None:
            client = self.realms.create_management_client(realm_id, REALM_MANAGEMENT_CLIENT_ID)
            client.name = "${client_realm-management}"
            client.full_scope_allowed = False
            client = self.realms.save_client(client)
            status = CREATED
        realm_admin = self.roles.add_role(
            realm_id, AdminRoles.REALM_ADMIN, client.id, role_description(AdminRoles.REALM_ADMIN)
        )
        self._ensure_admin_roles(realm_id, client, realm_admin)
        return status

    def _setup_account_management(self, run: _BootstrapRun) -> str:
        realm = run.realm
        client = self.realms.get_client(realm.id, ACCOUNT_MANAGEMENT_CLIENT_ID)
        if client is not None:
            for name in AccountRoles.ALL:
                if self.roles.get_role(realm.id, name, client.id) is None:
                    self.roles.add_role(realm.id, name, client.id, role_description(name))
            return VERIFIED

        client = self.realms.create_client(realm.id, Client(
            client_id=ACCOUNT_MANAGEMENT_CLIENT_ID,
            realm_id=realm.id,
            name="${client_account}",
            public_client=True,
            root_url=AUTH_BASE_URL_PROP,
            base_url=f"/realms/{realm.name}/account/",
            redirect_uris=[f"/realms/{realm.name}/account/*"],
        ))
        account_roles = {
            name: self.roles.add_role(realm.id, name, client.id, role_description(name))
            for name in AccountRoles.ALL
        }
        for parent, children in AccountRoles.COMPOSITES.items():
            for child in children:
                self.roles.add_composite(realm.id, account_roles[parent], account_roles[child])
        default_role = self._default_role(run)
        for name in AccountRoles.DEFAULT:
            self.roles.add_composite(realm.id, default_role, account_roles[name])

        if self.realms.get_client(realm.id, ACCOUNT_CONSOLE_CLIENT_ID) is None:
            self.realms.create_client(realm.id, Client(
                client_id=ACCOUNT_CONSOLE_CLIENT_ID,
                realm_id=realm.id,
                name="${client_account-console}",
                public_client=True,
                full_scope_allowed=False,
                root_url=AUTH_BASE_URL_PROP,
                base_url=f"/realms/{realm.name}/account/",
                redirect_uris=[f"/realms/{realm.name}/account/*"],
                attributes={"pkce.code.challenge.method": "S256"},
                scope_role_ids={
                    account_roles[AccountRoles.MANAGE_ACCOUNT].id,
                    account_roles[AccountRoles.VIEW_GROUPS].id,
                },
                protocol_mappers=[
                    ProtocolMapper("audience resolve", "openid-connect", "oidc-audience-resolve-mapper"),
                ],
            ))
        return CREATED

    def _setup_impersonation(self, run: _BootstrapRun) -> str:
        realm = run.realm
        status = VERIFIED
        if not run.is_admin_realm:
            client = self.realms.get_client(realm.id, REALM_MANAGEMENT_CLIENT_ID)
            if client is not None and self.roles.get_role(realm.id, AdminRoles.IMPERSONATION, client.id) is None:
                role = self.roles.add_role(
                    realm.id, AdminRoles.IMPERSONATION, client.id, role_description(AdminRoles.IMPERSONATION)
                )
                realm_admin = self.roles.get_role(realm.id, AdminRoles.REALM_ADMIN, client.id)
                if realm_admin is not None:
                    self.roles.add_composite(realm.id, realm_admin, role)
                status = CREATED

        admin_realm = self._admin_realm(run)
        master_client = None
        if realm.master_admin_client_id:
            master_client = self.realms.get_client_by_uuid(admin_realm.id, realm.master_admin_client_id)
        if master_client is not None and \
                self.roles.get_role(admin_realm.id, AdminRoles.IMPERSONATION, master_client.id) is None:
            role = self.roles.add_role(
                admin_realm.id, AdminRoles.IMPERSONATION, master_client.id,
                role_description(AdminRoles.IMPERSONATION),
            )
            admin_role = self.roles.get_role(admin_realm.id, AdminRoles.ADMIN)
            if admin_role is not None:
                self.roles.add_composite(admin_realm.id, admin_role, role)
            status = CREATED
        return status

    def _setup_broker_service(self, run: _BootstrapRun) -> str:
        realm_id = run.realm.id
        client = self.realms.get_client(realm_id, BROKER_SERVICE_CLIENT_ID)
        status = VERIFIED
        if client is None:
            client = self.realms.create_management_client(realm_id, BROKER_SERVICE_CLIENT_ID)
            client.name = "${client_broker}"
            client.full_scope_allowed = False
            client = self.realms.save_client(client)
            status = CREATED
        for name in BROKER_SERVICE_ROLES:
            if self.roles.get_role(realm_id, name, client.id) is None:
                self.roles.add_role(realm_id, name, client.id, role_description(name))
        return status

    def _setup_admin_console(self, run: _BootstrapRun) -> str:
        realm = run.realm
        if self.realms.get_client(realm.id, ADMIN_CONSOLE_CLIENT_ID) is not None:
            return VERIFIED
        client = Client(
            client_id=ADMIN_CONSOLE_CLIENT_ID,
            realm_id=realm.id,
            name="${client_security-admin-console}",
            public_client=True,
            full_scope_allowed=False,
            root_url=AUTH_ADMIN_URL_PROP,
            base_url=f"/admin/{realm.name}/console/",
            redirect_uris=[f"/admin/{realm.name}/console/*"],
            web_origins=["+"],
            attributes={"pkce.code.challenge.method": "S256"},
        )
        if run.is_admin_realm:
            admin_role = self.roles.get_role(realm.id, AdminRoles.ADMIN)
        else:
            management = self.realms.get_client(realm.id, REALM_MANAGEMENT_CLIENT_ID)
            admin_role = None
            if management is not None:
                admin_role = self.roles.get_role(realm.id, AdminRoles.REALM_ADMIN, management.id)
        if admin_role is not None:
            client.scope_role_ids.add(admin_role.id)
        self.realms.create_client(realm.id, client)
        return CREATED

    def _setup_admin_cli(self, run: _BootstrapRun) -> str:
        realm_id = run.realm.id
        if self.realms.get_client(realm_id, ADMIN_CLI_CLIENT_ID) is not None:
            return VERIFIED
        self.realms.create_client(realm_id, Client(
            client_id=ADMIN_CLI_CLIENT_ID,
            realm_id=realm_id,
            name="${client_admin-cli}",
            public_client=True,
            standard_flow_enabled=False,
            direct_access_grants_enabled=True,
        ))
        return CREATED

    def _setup_offline_access(self, run: _BootstrapRun) -> str:
        realm_id = run.realm.id
        status = VERIFIED
        role = self.roles.get_role(realm_id, OFFLINE_ACCESS_ROLE)
        if role is None:
            role = self.roles.add_role(realm_id, OFFLINE_ACCESS_ROLE, description=role_description("offline-access"))
            self.roles.add_composite(realm_id, self._default_role(run), role)
            status = CREATED

        declared = run.realm_import is not None and run.realm_import.has_client_scope(OFFLINE_ACCESS_ROLE)
        if not declared and self._client_scope(realm_id, OFFLINE_ACCESS_ROLE) is None:
            self.store.create(realm_id, models.CLIENT_SCOPE, ClientScope(
                name=OFFLINE_ACCESS_ROLE,
                realm_id=realm_id,
                description="OpenID Connect built-in scope: offline_access",
                scope_role_ids={role.id},
                attributes={
                    "consent.screen.text": "${offlineAccessScopeConsentText}",
                    "display.on.consent.screen": "true",
                },
            ))
            status = CREATED
        return status

    def _setup_default_client_scopes(self, run: _BootstrapRun) -> str:
        if run.realm_import is not None and run.realm_import.client_scopes:
            # Imports that bring their own scopes replace the built-in set
            return SKIPPED
        realm_id = run.realm.id
        status = VERIFIED
        for name, protocol in DEFAULT_CLIENT_SCOPES:
            if self._client_scope(realm_id, name) is None:
                self.store.create(realm_id, models.CLIENT_SCOPE, ClientScope(
                    name=name,
                    realm_id=realm_id,
                    protocol=protocol,
                    description=f"{protocol} built-in scope: {name}",
                ))
                status = CREATED
        return status

    def _setup_import_content(self, run: _BootstrapRun) -> str:
        realm_import = run.realm_import
        if realm_import is None:
            return SKIPPED
        realm_id = run.realm.id

        for name in realm_import.realm_roles:
            self.roles.add_role(realm_id, name)
        for name in realm_import.client_scopes:
            if self._client_scope(realm_id, name) is None:
                self.store.create(realm_id, models.CLIENT_SCOPE, ClientScope(name=name, realm_id=realm_id))

        for declared in realm_import.clients:
            if self.realms.get_client(realm_id, declared.client_id) is None:
                client = copy.deepcopy(declared)
                client.realm_id = realm_id
                self.realms.create_client(realm_id, client)
        for client_id, role_names in realm_import.client_roles.items():
            client = self.realms.get_client(realm_id, client_id)
            if client is None:
                logger.warning("[bootstrap] Import declares roles for unknown client '%s'", client_id)
                continue
            for name in role_names:
                self.roles.add_role(realm_id, name, client.id)

        existing_aliases = {p.alias for p in self.store.list_children(realm_id, models.IDENTITY_PROVIDER)}
        for declared in realm_import.identity_providers:
            alias = validate_provider_alias(declared.alias)
            self.providers.identity_provider_type(declared.provider_id)
            if alias in existing_aliases:
                continue
            provider = copy.deepcopy(declared)
            provider.alias = alias
            provider.realm_id = realm_id
            self.store.create(realm_id, models.IDENTITY_PROVIDER, provider)
            existing_aliases.add(alias)

        existing_federations = {f.alias for f in self.store.list_children(realm_id, models.FEDERATION)}
        for declared in realm_import.federations:
            self.providers.federation_type(declared.provider_id)
            if declared.alias in existing_federations:
                continue
            federation = copy.deepcopy(declared)
            federation.realm_id = realm_id
            for mapper in federation.mappers:
                mapper.federation_id = federation.id
            self.store.create(realm_id, models.FEDERATION, federation)
            existing_federations.add(declared.alias)

        logger.info("[bootstrap] Import content applied to realm '%s'", run.realm.name)
        return CREATED

    def _setup_admin_console_locale_mapper(self, run: _BootstrapRun) -> str:
        client = self.realms.get_client(run.realm.id, ADMIN_CONSOLE_CLIENT_ID)
        if client is None:
            return SKIPPED
        if client.protocol_mapper("locale") is not None:
            return VERIFIED
        client.protocol_mappers.append(ProtocolMapper(
            name="locale",
            protocol="openid-connect",
            mapper_type="oidc-usermodel-attribute-mapper",
            config={
                "user.attribute": "locale",
                "claim.name": "locale",
                "jsonType.label": "String",
                "id.token.claim": "true",
                "access.token.claim": "true",
                "userinfo.token.claim": "true",
            },
        ))
        self.realms.save_client(client)
        return CREATED

    def _setup_authentication_flows(self, run: _BootstrapRun) -> str:
        realm_id = run.realm.id
        present = {f.alias for f in self.store.list_children(realm_id, models.AUTH_FLOW)}
        status = VERIFIED
        for alias, description in DEFAULT_AUTHENTICATION_FLOWS:
            if alias not in present:
                self.store.create(realm_id, models.AUTH_FLOW, AuthenticationFlow(
                    alias=alias, realm_id=realm_id, description=description,
                ))
                status = CREATED
        return status

    def _setup_required_actions(self, run: _BootstrapRun) -> str:
        realm_id = run.realm.id
        present = {a.alias for a in self.store.list_children(realm_id, models.REQUIRED_ACTION)}
        status = VERIFIED
        for alias, name, enabled in DEFAULT_REQUIRED_ACTIONS:
            if alias not in present:
                self.store.create(realm_id, models.REQUIRED_ACTION, RequiredAction(
                    alias=alias, realm_id=realm_id, name=name, enabled=enabled,
                ))
                status = CREATED
        return status

    def _setup_delete_account(self, run: _BootstrapRun) -> str:
        realm_id = run.realm.id
        client = self.realms.get_client(realm_id, ACCOUNT_MANAGEMENT_CLIENT_ID)
        if client is None:
            return SKIPPED
        if self.roles.get_role(realm_id, AccountRoles.DELETE_ACCOUNT, client.id) is not None:
            return VERIFIED
        self.roles.add_role(realm_id, AccountRoles.DELETE_ACCOUNT, client.id,
                            role_description(AccountRoles.DELETE_ACCOUNT))
        return CREATED

"""Dependency Registry: the static table of a realm's default resources.

Each entry names a default resource, the resources it depends on, and (when
applicable) the well-known client an import document may already declare for
it. The table order is the order the bootstrapper walks.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_ADMIN_REALM = "master"

REALM_MANAGEMENT_CLIENT_ID = "realm-management"
ACCOUNT_MANAGEMENT_CLIENT_ID = "account"
ACCOUNT_CONSOLE_CLIENT_ID = "account-console"
BROKER_SERVICE_CLIENT_ID = "broker"
ADMIN_CONSOLE_CLIENT_ID = "security-admin-console"
ADMIN_CLI_CLIENT_ID = "admin-cli"

OFFLINE_ACCESS_ROLE = "offline_access"
DEFAULT_ROLES_ROLE_PREFIX = "default-roles"
MAX_DEFAULT_ROLE_SUFFIX = 2**31 - 1

AUTH_BASE_URL_PROP = "${authBaseUrl}"
AUTH_ADMIN_URL_PROP = "${authAdminUrl}"


def master_realm_admin_client_id(realm_name: str) -> str:
    """Client id of a realm's management client inside the administration realm."""
    return f"{realm_name}-realm"


def role_description(role_name: str) -> str:
    return "${role_" + role_name + "}"


class AdminRoles:
    ADMIN = "admin"
    CREATE_REALM = "create-realm"
    REALM_ADMIN = "realm-admin"
    IMPERSONATION = "impersonation"

    QUERY_USERS = "query-users"
    QUERY_CLIENTS = "query-clients"
    QUERY_REALMS = "query-realms"
    QUERY_GROUPS = "query-groups"
    VIEW_USERS = "view-users"
    VIEW_CLIENTS = "view-clients"

    ALL_REALM_ROLES = (
        "create-client",
        "view-realm",
        VIEW_USERS,
        VIEW_CLIENTS,
        "view-events",
        "view-identity-providers",
        "view-authorization",
        "manage-realm",
        "manage-users",
        "manage-clients",
        "manage-events",
        "manage-identity-providers",
        "manage-authorization",
        QUERY_USERS,
        QUERY_CLIENTS,
        QUERY_REALMS,
        QUERY_GROUPS,
    )

    # parent -> implied roles, all on the same management client
    QUERY_COMPOSITES = {
        VIEW_CLIENTS: (QUERY_CLIENTS,),
        VIEW_USERS: (QUERY_USERS, QUERY_GROUPS),
    }


class AccountRoles:
    VIEW_PROFILE = "view-profile"
    MANAGE_ACCOUNT = "manage-account"
    MANAGE_ACCOUNT_LINKS = "manage-account-links"
    VIEW_APPLICATIONS = "view-applications"
    VIEW_CONSENT = "view-consent"
    MANAGE_CONSENT = "manage-consent"
    MANAGE_ACCOUNT_BASIC_AUTH = "manage-account-basic-auth"
    MANAGE_ACCOUNT_2FA = "manage-account-2fa"
    VIEW_GROUPS = "view-groups"
    DELETE_ACCOUNT = "delete-account"

    # granted to every user through the realm's default role
    DEFAULT = (VIEW_PROFILE, MANAGE_ACCOUNT)

    ALL = (
        VIEW_PROFILE,
        MANAGE_ACCOUNT,
        MANAGE_ACCOUNT_LINKS,
        VIEW_APPLICATIONS,
        VIEW_CONSENT,
        MANAGE_CONSENT,
        MANAGE_ACCOUNT_BASIC_AUTH,
        MANAGE_ACCOUNT_2FA,
        VIEW_GROUPS,
    )

    COMPOSITES = {
        MANAGE_ACCOUNT: (MANAGE_ACCOUNT_LINKS, MANAGE_ACCOUNT_BASIC_AUTH, MANAGE_ACCOUNT_2FA),
        MANAGE_CONSENT: (VIEW_CONSENT,),
    }


BROKER_SERVICE_ROLES = ("read-token",)

DEFAULT_CLIENT_SCOPES = (
    ("profile", "openid-connect"),
    ("email", "openid-connect"),
    ("address", "openid-connect"),
    ("phone", "openid-connect"),
    ("roles", "openid-connect"),
    ("web-origins", "openid-connect"),
    ("microprofile-jwt", "openid-connect"),
    ("acr", "openid-connect"),
    ("role_list", "saml"),
)

DEFAULT_AUTHENTICATION_FLOWS = (
    ("browser", "browser based authentication"),
    ("direct grant", "OpenID Connect Resource Owner Grant"),
    ("registration", "registration flow"),
    ("reset credentials", "Reset credentials for a user if they forgot their password or something"),
    ("clients", "Base authentication for clients"),
    ("first broker login", "Actions taken after first broker login with identity provider account"),
    ("docker auth", "Used by Docker clients to authenticate against the IDP"),
)

DEFAULT_REQUIRED_ACTIONS = (
    ("CONFIGURE_TOTP", "Configure OTP", True),
    ("TERMS_AND_CONDITIONS", "Terms and Conditions", False),
    ("UPDATE_PASSWORD", "Update Password", True),
    ("UPDATE_PROFILE", "Update Profile", True),
    ("VERIFY_EMAIL", "Verify Email", True),
    ("delete_account", "Delete Account", False),
    ("update_user_locale", "Update User Locale", True),
)


@dataclass(frozen=True)
class DefaultResource:
    """One default resource a realm must carry.

    ``declared_client`` maps ``(realm_name, admin_realm_name)`` to the
    well-known client id an import may already declare for this resource, or
    None when the import cannot provide it.
    """
    name: str
    depends_on: tuple[str, ...] = ()
    declared_client: Optional[Callable[[str, str], Optional[str]]] = None


def _master_admin_declared(realm_name: str, admin_realm: str) -> Optional[str]:
    # Only the administration realm holds its own master admin client.
    if realm_name != admin_realm:
        return None
    return master_realm_admin_client_id(realm_name)


def _realm_admin_declared(realm_name: str, admin_realm: str) -> Optional[str]:
    if realm_name == admin_realm:
        return master_realm_admin_client_id(realm_name)
    return REALM_MANAGEMENT_CLIENT_ID


REALM_DEFAULTS = "realm-defaults"
DEFAULT_ROLE = "default-role"
MASTER_ADMIN_MANAGEMENT = "master-admin-management"
REALM_ADMIN_MANAGEMENT = "realm-admin-management"
ACCOUNT_MANAGEMENT = "account-management"
IMPERSONATION = "impersonation"
BROKER_SERVICE = "broker-service"
ADMIN_CONSOLE = "admin-console"
ADMIN_CLI = "admin-cli"
OFFLINE_ACCESS = "offline-access"
DEFAULT_CLIENT_SCOPES_RESOURCE = "default-client-scopes"
IMPORT_CONTENT = "import-content"
ADMIN_CONSOLE_LOCALE_MAPPER = "admin-console-locale-mapper"
AUTHENTICATION_FLOWS = "authentication-flows"
REQUIRED_ACTIONS = "required-actions"
DELETE_ACCOUNT = "delete-account"

DEFAULT_RESOURCES: tuple[DefaultResource, ...] = (
    DefaultResource(REALM_DEFAULTS),
    DefaultResource(DEFAULT_ROLE),
    DefaultResource(MASTER_ADMIN_MANAGEMENT, declared_client=_master_admin_declared),
    DefaultResource(
        REALM_ADMIN_MANAGEMENT,
        depends_on=(MASTER_ADMIN_MANAGEMENT,),
        declared_client=_realm_admin_declared,
    ),
    DefaultResource(
        ACCOUNT_MANAGEMENT,
        depends_on=(DEFAULT_ROLE,),
        declared_client=lambda realm, admin: ACCOUNT_MANAGEMENT_CLIENT_ID,
    ),
    DefaultResource(IMPERSONATION, depends_on=(REALM_ADMIN_MANAGEMENT, MASTER_ADMIN_MANAGEMENT)),
    DefaultResource(BROKER_SERVICE, declared_client=lambda realm, admin: BROKER_SERVICE_CLIENT_ID),
    DefaultResource(ADMIN_CONSOLE, declared_client=lambda realm, admin: ADMIN_CONSOLE_CLIENT_ID),
    DefaultResource(
        ADMIN_CLI,
        depends_on=(REALM_ADMIN_MANAGEMENT,),
        declared_client=lambda realm, admin: ADMIN_CLI_CLIENT_ID,
    ),
    DefaultResource(OFFLINE_ACCESS, depends_on=(DEFAULT_ROLE,)),
    DefaultResource(DEFAULT_CLIENT_SCOPES_RESOURCE, depends_on=(OFFLINE_ACCESS,)),
    DefaultResource(IMPORT_CONTENT, depends_on=(REALM_DEFAULTS, DEFAULT_ROLE)),
    DefaultResource(ADMIN_CONSOLE_LOCALE_MAPPER, depends_on=(ADMIN_CONSOLE,)),
    DefaultResource(AUTHENTICATION_FLOWS),
    DefaultResource(REQUIRED_ACTIONS),
    DefaultResource(DELETE_ACCOUNT, depends_on=(ACCOUNT_MANAGEMENT,)),
)


def resource_names(resources: tuple[DefaultResource, ...] = DEFAULT_RESOURCES) -> list[str]:
    return [resource.name for resource in resources]

"""Data model for realms, clients, roles, identity providers and federations.

Entities are plain dataclasses. The store hands out copies, so mutating an
entity has no effect until it is written back with ``Store.update``.
"""
from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


def generate_id() -> str:
    """Return a new opaque entity id."""
    return uuid.uuid4().hex


# Store kinds
REALM = "realm"
CLIENT = "client"
ROLE = "role"
CLIENT_SCOPE = "client_scope"
AUTH_FLOW = "authentication_flow"
REQUIRED_ACTION = "required_action"
IDENTITY_PROVIDER = "identity_provider"
IDP_MAPPER = "identity_provider_mapper"
FEDERATION = "federation"


@dataclass
class Realm:
    name: str
    id: str = field(default_factory=generate_id)
    enabled: bool = True
    attributes: dict[str, str] = field(default_factory=dict)
    master_admin_client_id: Optional[str] = None
    default_role_id: Optional[str] = None
    ssl_required: str = "external"
    brute_force_protected: bool = False
    max_failure_wait_seconds: int = 0
    failure_factor: int = 0
    login_with_email_allowed: bool = False
    events_listeners: list[str] = field(default_factory=list)


@dataclass
class ProtocolMapper:
    name: str
    protocol: str
    mapper_type: str
    config: dict[str, str] = field(default_factory=dict)


@dataclass
class Client:
    client_id: str
    realm_id: str
    id: str = field(default_factory=generate_id)
    name: str = ""
    enabled: bool = True
    protocol: str = "openid-connect"
    public_client: bool = False
    bearer_only: bool = False
    full_scope_allowed: bool = True
    standard_flow_enabled: bool = True
    direct_access_grants_enabled: bool = False
    always_display_in_console: bool = False
    root_url: str = ""
    base_url: str = ""
    redirect_uris: list[str] = field(default_factory=list)
    web_origins: list[str] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)
    scope_role_ids: set[str] = field(default_factory=set)
    protocol_mappers: list[ProtocolMapper] = field(default_factory=list)

    def protocol_mapper(self, name: str) -> Optional[ProtocolMapper]:
        for mapper in self.protocol_mappers:
            if mapper.name == name:
                return mapper
        return None


@dataclass
class Role:
    """Realm role (``client_id`` is None) or client role.

    ``client_id`` holds the owning client's entity id, not its clientId.
    """
    name: str
    realm_id: str
    id: str = field(default_factory=generate_id)
    client_id: Optional[str] = None
    description: str = ""
    composite_ids: set[str] = field(default_factory=set)

    @property
    def is_client_role(self) -> bool:
        return self.client_id is not None

    @property
    def composite(self) -> bool:
        return bool(self.composite_ids)


@dataclass
class ClientScope:
    name: str
    realm_id: str
    id: str = field(default_factory=generate_id)
    protocol: str = "openid-connect"
    description: str = ""
    scope_role_ids: set[str] = field(default_factory=set)
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class AuthenticationFlow:
    alias: str
    realm_id: str
    id: str = field(default_factory=generate_id)
    description: str = ""
    top_level: bool = True
    built_in: bool = True


@dataclass
class RequiredAction:
    alias: str
    realm_id: str
    id: str = field(default_factory=generate_id)
    name: str = ""
    enabled: bool = True
    default_action: bool = False


@dataclass
class IdentityProvider:
    alias: str
    realm_id: str
    provider_id: str
    id: str = field(default_factory=generate_id)
    display_name: str = ""
    enabled: bool = True
    link_only: bool = False
    trust_email: bool = False
    config: dict[str, str] = field(default_factory=dict)
    federations: set[str] = field(default_factory=set)


@dataclass
class IdentityProviderMapper:
    name: str
    identity_provider_alias: str
    mapper_type: str
    realm_id: str
    id: str = field(default_factory=generate_id)
    config: dict[str, str] = field(default_factory=dict)


@dataclass
class FederationMapper:
    """Template applied to every identity provider a federation introduces."""
    name: str
    mapper_type: str
    federation_id: str
    id: str = field(default_factory=generate_id)
    config: dict[str, str] = field(default_factory=dict)

    def instantiate(self, alias: str, realm_id: str) -> IdentityProviderMapper:
        return IdentityProviderMapper(
            name=self.name,
            identity_provider_alias=alias,
            mapper_type=self.mapper_type,
            realm_id=realm_id,
            config=dict(self.config),
        )


@dataclass
class IdentityProviderFederation:
    alias: str
    realm_id: str
    url: str
    id: str = field(default_factory=generate_id)
    provider_id: str = "saml"
    display_name: str = ""
    update_frequency_minutes: int = 60
    last_refresh: Optional[int] = None
    valid_until: Optional[int] = None
    entity_id_deny: list[str] = field(default_factory=list)
    entity_id_allow: list[str] = field(default_factory=list)
    registration_authority_deny: list[str] = field(default_factory=list)
    registration_authority_allow: list[str] = field(default_factory=list)
    category_deny: dict[str, list[str]] = field(default_factory=dict)
    category_allow: dict[str, list[str]] = field(default_factory=dict)
    config: dict[str, str] = field(default_factory=dict)
    mappers: list[FederationMapper] = field(default_factory=list)

    @property
    def interval_seconds(self) -> int:
        return max(1, int(self.update_frequency_minutes)) * 60

    def mapper(self, name: str) -> Optional[FederationMapper]:
        for mapper in self.mappers:
            if mapper.name == name:
                return mapper
        return None


@dataclass
class ProviderDescriptor:
    """One fetched record describing a single identity provider."""
    id: str
    display_name: str = ""
    categories: dict[str, list[str]] = field(default_factory=dict)
    registration_authority: Optional[str] = None
    config: dict[str, str] = field(default_factory=dict)
    provider_id: Optional[str] = None
    enabled: bool = True
    trust_email: bool = False
    link_only: bool = False
    # Epoch ms after which the published metadata must not be trusted
    valid_until: Optional[int] = None


@dataclass(frozen=True)
class FilterSet:
    entity_id_deny: frozenset[str] = frozenset()
    entity_id_allow: frozenset[str] = frozenset()
    registration_authority_deny: frozenset[str] = frozenset()
    registration_authority_allow: frozenset[str] = frozenset()
    category_deny: tuple[tuple[str, frozenset[str]], ...] = ()
    category_allow: tuple[tuple[str, frozenset[str]], ...] = ()

    @classmethod
    def from_federation(cls, federation: IdentityProviderFederation) -> "FilterSet":
        return cls(
            entity_id_deny=frozenset(federation.entity_id_deny),
            entity_id_allow=frozenset(federation.entity_id_allow),
            registration_authority_deny=frozenset(federation.registration_authority_deny),
            registration_authority_allow=frozenset(federation.registration_authority_allow),
            category_deny=_freeze_categories(federation.category_deny),
            category_allow=_freeze_categories(federation.category_allow),
        )


def _freeze_categories(categories: dict[str, list[str]]) -> tuple[tuple[str, frozenset[str]], ...]:
    return tuple(sorted((name, frozenset(values)) for name, values in categories.items()))


@dataclass
class ScheduledTask:
    name: str
    interval_seconds: float
    task: Callable[[], Any]


@dataclass
class RealmImport:
    """What an import document declares, as far as bootstrap is concerned.

    ``clients`` roles are given as ``client_roles[client_id] -> [role names]``.
    """
    realm: str
    id: Optional[str] = None
    clients: list[Client] = field(default_factory=list)
    client_roles: dict[str, list[str]] = field(default_factory=dict)
    realm_roles: list[str] = field(default_factory=list)
    client_scopes: list[str] = field(default_factory=list)
    default_role: Optional[str] = None
    identity_providers: list[IdentityProvider] = field(default_factory=list)
    federations: list[IdentityProviderFederation] = field(default_factory=list)

    def has_client(self, client_id: str) -> bool:
        return any(client.client_id == client_id for client in self.clients)

    def has_realm_role(self, name: str) -> bool:
        return name in self.realm_roles

    def has_client_scope(self, name: str) -> bool:
        return name in self.client_scopes

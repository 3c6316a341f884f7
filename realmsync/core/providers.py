"""Provider type registry.

Identity provider types, identity provider mapper types and federation types
are registered explicitly at construction time. Lookups of an unregistered id
raise ``UnknownProviderTypeError``.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .exceptions import UnknownProviderTypeError


@dataclass(frozen=True)
class ProviderType:
    id: str
    name: str
    # Mapper types apply to these identity provider types; "*" means any
    compatible_with: tuple[str, ...] = ()
    config_keys: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        data = {"id": self.id, "name": self.name}
        if self.compatible_with:
            data["compatibleProviders"] = list(self.compatible_with)
        if self.config_keys:
            data["properties"] = list(self.config_keys)
        return data


ANY_PROVIDER = "*"

DEFAULT_IDENTITY_PROVIDER_TYPES = (
    ProviderType("saml", "SAML v2.0", config_keys=(
        "singleSignOnServiceUrl", "singleLogoutServiceUrl", "nameIDPolicyFormat",
        "signingCertificate", "metadataDescriptorUrl", "refreshPeriod",
    )),
    ProviderType("oidc", "OpenID Connect v1.0", config_keys=(
        "authorizationUrl", "tokenUrl", "userInfoUrl", "issuer", "clientId",
        "clientSecret", "metadataDescriptorUrl", "refreshPeriod",
    )),
    ProviderType("keycloak-oidc", "Keycloak OpenID Connect", config_keys=(
        "authorizationUrl", "tokenUrl", "clientId", "clientSecret",
    )),
)

DEFAULT_MAPPER_TYPES = (
    ProviderType("hardcoded-attribute-idp-mapper", "Hardcoded Attribute", (ANY_PROVIDER,),
                 ("attribute", "attribute.value")),
    ProviderType("hardcoded-role-idp-mapper", "Hardcoded Role", (ANY_PROVIDER,), ("role",)),
    ProviderType("saml-user-attribute-idp-mapper", "Attribute Importer", ("saml",),
                 ("attribute.name", "attribute.friendly.name", "user.attribute")),
    ProviderType("saml-role-idp-mapper", "SAML Attribute to Role", ("saml",),
                 ("attribute.name", "attribute.value", "role")),
    ProviderType("oidc-user-attribute-idp-mapper", "Attribute Importer", ("oidc", "keycloak-oidc"),
                 ("claim", "user.attribute")),
    ProviderType("oidc-role-idp-mapper", "Claim to Role", ("oidc", "keycloak-oidc"),
                 ("claim", "claim.value", "role")),
)

DEFAULT_FEDERATION_TYPES = (
    ProviderType("saml", "SAML v2.0 federation"),
)


class ProviderTypeRegistry:
    """Explicit registry of identity provider, mapper and federation types."""

    def __init__(
        self,
        identity_provider_types: Iterable[ProviderType] = DEFAULT_IDENTITY_PROVIDER_TYPES,
        mapper_types: Iterable[ProviderType] = DEFAULT_MAPPER_TYPES,
        federation_types: Iterable[ProviderType] = DEFAULT_FEDERATION_TYPES,
    ):
        self._identity_providers = {t.id: t for t in identity_provider_types}
        self._mappers = {t.id: t for t in mapper_types}
        self._federations = {t.id: t for t in federation_types}

    def register_identity_provider(self, provider_type: ProviderType) -> None:
        self._identity_providers[provider_type.id] = provider_type

    def register_mapper(self, mapper_type: ProviderType) -> None:
        self._mappers[mapper_type.id] = mapper_type

    def identity_provider_type(self, provider_id: str) -> ProviderType:
        """Return the identity provider type ``provider_id``.

        Raises:
            UnknownProviderTypeError: If the type is not registered
        """
        return self._lookup(self._identity_providers, provider_id, "identity provider")

    def mapper_type(self, mapper_type_id: str, provider_id: Optional[str] = None) -> ProviderType:
        """Return mapper type ``mapper_type_id``, checking it suits ``provider_id``."""
        mapper = self._lookup(self._mappers, mapper_type_id, "identity provider mapper")
        if provider_id is not None and ANY_PROVIDER not in mapper.compatible_with \
                and provider_id not in mapper.compatible_with:
            raise UnknownProviderTypeError(
                f"Mapper type '{mapper_type_id}' is not available for provider type '{provider_id}'"
            )
        return mapper

    def federation_type(self, provider_id: str) -> ProviderType:
        return self._lookup(self._federations, provider_id, "federation")

    def identity_provider_types(self) -> list[ProviderType]:
        return list(self._identity_providers.values())

    def mapper_types_for(self, provider_id: str) -> list[ProviderType]:
        return [
            m for m in self._mappers.values()
            if ANY_PROVIDER in m.compatible_with or provider_id in m.compatible_with
        ]

    @staticmethod
    def _lookup(table: dict[str, ProviderType], type_id: str, label: str) -> ProviderType:
        provider_type = table.get(type_id)
        if provider_type is None:
            raise UnknownProviderTypeError(f"Unknown {label} type '{type_id}'")
        return provider_type

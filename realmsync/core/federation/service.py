"""Identity provider and federation management operations."""
from __future__ import annotations
import logging
from typing import Optional

from .. import models
from ..events import (
    FEDERATION_CREATED,
    FEDERATION_REMOVED,
    IDP_CREATED,
    IDP_REMOVED,
    IDP_UPDATED,
    ChangeEvent,
    EventBus,
)
from ..exceptions import (
    DuplicateMapperError,
    FederationNotFoundError,
    IdentityProviderNotFoundError,
)
from ..models import (
    FederationMapper,
    IdentityProvider,
    IdentityProviderFederation,
    IdentityProviderMapper,
)
from ..providers import ProviderTypeRegistry
from ..store import Store
from ..validators import validate_provider_alias, validate_refresh_interval, validate_reserved_chars

logger = logging.getLogger(__name__)

# Outcomes of detach_from_federation
DETACHED = "detached"
DELETED = "deleted"
ABSENT = "absent"


class FederationService:
    """Service for federations, their mapper templates and their member providers."""

    def __init__(
        self,
        store: Store,
        events: Optional[EventBus] = None,
        providers: Optional[ProviderTypeRegistry] = None,
    ):
        """Initialize federation service.

        Args:
            store: Persistence collaborator
            events: Observer list for identity provider / federation events
            providers: Provider type registry used for validation
        """
        self.store = store
        self.events = events or EventBus()
        self.providers = providers or ProviderTypeRegistry()

    # ─────────────────────────────────────────────────────────────────────────
    # Federations
    # ─────────────────────────────────────────────────────────────────────────
    def list_federations(self, realm_id: str) -> list[IdentityProviderFederation]:
        return sorted(self.store.list_children(realm_id, models.FEDERATION), key=lambda f: f.alias)

    def get_federation(self, realm_id: str, federation_id: str) -> Optional[IdentityProviderFederation]:
        return self.store.get(realm_id, models.FEDERATION, federation_id)

    def get_federation_by_alias(self, realm_id: str, alias: str) -> Optional[IdentityProviderFederation]:
        for federation in self.store.list_children(realm_id, models.FEDERATION):
            if federation.alias == alias:
                return federation
        return None

    def require_federation(self, realm_id: str, federation_id: str) -> IdentityProviderFederation:
        """Return the federation or raise.

        Raises:
            FederationNotFoundError: If no federation has this id
        """
        federation = self.get_federation(realm_id, federation_id)
        if federation is None:
            raise FederationNotFoundError(f"Federation '{federation_id}' not found")
        return federation

    def create_federation(self, realm_id: str, federation: IdentityProviderFederation) -> IdentityProviderFederation:
        """Persist a new federation together with its mapper templates.

        Args:
            realm_id: Realm id
            federation: Federation to create

        Returns:
            Stored federation

        Raises:
            InvalidAliasError: If the alias contains reserved characters
            UnknownProviderTypeError: If the federation type is not registered
            DuplicateMapperError: If two mapper templates share a name
            ModelDuplicateError: If the alias is already taken
        """
        federation.alias = validate_reserved_chars(federation.alias, "Federation alias")
        federation.update_frequency_minutes = validate_refresh_interval(federation.update_frequency_minutes)
        self.providers.federation_type(federation.provider_id)
        federation.realm_id = realm_id
        names = set()
        for mapper in federation.mappers:
            if mapper.name in names:
                raise DuplicateMapperError("Federation mapper name must be unique per federation")
            names.add(mapper.name)
            self.providers.mapper_type(mapper.mapper_type, federation.provider_id)
            mapper.federation_id = federation.id
        created = self.store.create(realm_id, models.FEDERATION, federation)
        logger.info("[federation] Federation '%s' created", created.alias)
        self.events.publish(ChangeEvent(FEDERATION_CREATED, realm_id, created.id, {"alias": created.alias}))
        return created

    def save_federation(self, federation: IdentityProviderFederation) -> IdentityProviderFederation:
        return self.store.update(federation.realm_id, models.FEDERATION, federation)

    def remove_federation(self, realm_id: str, federation_id: str) -> list[str]:
        """Detach every member provider, then delete the federation.

        Providers left without any membership are deleted. Cancelling the
        federation's refresh task is the caller's job and must happen first.

        Returns:
            Aliases of the identity providers that were deleted
        """
        federation = self.require_federation(realm_id, federation_id)
        deleted = []
        for provider in self.members(realm_id, federation_id):
            if self.detach_from_federation(realm_id, provider.alias, federation_id) == DELETED:
                deleted.append(provider.alias)
        self.store.delete(realm_id, models.FEDERATION, federation_id)
        logger.info(
            "[federation] Federation '%s' removed (%d provider(s) deleted)", federation.alias, len(deleted)
        )
        self.events.publish(ChangeEvent(FEDERATION_REMOVED, realm_id, federation_id, {"alias": federation.alias}))
        return deleted

    # ─────────────────────────────────────────────────────────────────────────
    # Mapper templates
    # ─────────────────────────────────────────────────────────────────────────
    def add_mapper(self, realm_id: str, federation_id: str, mapper: FederationMapper) -> FederationMapper:
        """Add a mapper template to a federation.

        Templates apply to providers the federation introduces from now on.

        Raises:
            DuplicateMapperError: If the federation already has a mapper with this name
            UnknownProviderTypeError: If the mapper type is not registered
        """
        federation = self.require_federation(realm_id, federation_id)
        if federation.mapper(mapper.name) is not None:
            raise DuplicateMapperError("Federation mapper name must be unique per federation")
        self.providers.mapper_type(mapper.mapper_type, federation.provider_id)
        mapper.federation_id = federation.id
        federation.mappers.append(mapper)
        self.save_federation(federation)
        logger.info("[federation] Mapper '%s' added to federation '%s'", mapper.name, federation.alias)
        return mapper

    def update_mapper(self, realm_id: str, federation_id: str, mapper: FederationMapper) -> FederationMapper:
        federation = self.require_federation(realm_id, federation_id)
        for index, existing in enumerate(federation.mappers):
            if existing.id == mapper.id:
                clash = federation.mapper(mapper.name)
                if clash is not None and clash.id != mapper.id:
                    raise DuplicateMapperError("Federation mapper name must be unique per federation")
                self.providers.mapper_type(mapper.mapper_type, federation.provider_id)
                mapper.federation_id = federation.id
                federation.mappers[index] = mapper
                self.save_federation(federation)
                return mapper
        raise FederationNotFoundError(f"Mapper '{mapper.id}' not found in federation '{federation.alias}'")

    def remove_mapper(self, realm_id: str, federation_id: str, mapper_id: str) -> bool:
        federation = self.require_federation(realm_id, federation_id)
        remaining = [m for m in federation.mappers if m.id != mapper_id]
        if len(remaining) == len(federation.mappers):
            return False
        federation.mappers = remaining
        self.save_federation(federation)
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Identity providers
    # ─────────────────────────────────────────────────────────────────────────
    def get_identity_provider(self, realm_id: str, alias: str) -> Optional[IdentityProvider]:
        for provider in self.store.list_children(realm_id, models.IDENTITY_PROVIDER):
            if provider.alias == alias:
                return provider
        return None

    def require_identity_provider(self, realm_id: str, alias: str) -> IdentityProvider:
        provider = self.get_identity_provider(realm_id, alias)
        if provider is None:
            raise IdentityProviderNotFoundError(f"Identity provider '{alias}' not found")
        return provider

    def list_identity_providers(self, realm_id: str) -> list[IdentityProvider]:
        return sorted(self.store.list_children(realm_id, models.IDENTITY_PROVIDER), key=lambda p: p.alias)

    def search_identity_providers(
        self,
        realm_id: str,
        keyword: Optional[str] = None,
        first: int = 0,
        max_results: Optional[int] = None,
    ) -> list[IdentityProvider]:
        """Search providers by alias or display name.

        A keyword wrapped in double quotes matches exactly; otherwise any
        case-insensitive substring match counts.

        Args:
            realm_id: Realm id
            keyword: Search term, None for all
            first: Offset of the first result
            max_results: Page size, None for unbounded

        Returns:
            Matching providers sorted by alias
        """
        providers = self.list_identity_providers(realm_id)
        if keyword:
            if len(keyword) >= 2 and keyword.startswith('"') and keyword.endswith('"'):
                exact = keyword[1:-1]
                providers = [p for p in providers if p.alias == exact or p.display_name == exact]
            else:
                needle = keyword.lower()
                providers = [
                    p for p in providers
                    if needle in p.alias.lower() or needle in (p.display_name or "").lower()
                ]
        first = max(0, first or 0)
        if max_results is None or max_results < 0:
            return providers[first:]
        return providers[first:first + max_results]

    def types_used(self, realm_id: str) -> list[str]:
        return sorted({p.provider_id for p in self.store.list_children(realm_id, models.IDENTITY_PROVIDER)})

    def members(self, realm_id: str, federation_id: str) -> list[IdentityProvider]:
        return [
            p for p in self.list_identity_providers(realm_id)
            if federation_id in p.federations
        ]

    def create_identity_provider(self, realm_id: str, provider: IdentityProvider) -> IdentityProvider:
        """Persist a new identity provider.

        Raises:
            InvalidAliasError: If the alias is empty or malformed
            UnknownProviderTypeError: If the provider type is not registered
            ModelDuplicateError: If the alias is already taken
        """
        provider.alias = validate_provider_alias(provider.alias)
        self.providers.identity_provider_type(provider.provider_id)
        provider.realm_id = realm_id
        created = self.store.create(realm_id, models.IDENTITY_PROVIDER, provider)
        logger.info("[federation] Identity provider '%s' created", created.alias)
        self.events.publish(ChangeEvent(IDP_CREATED, realm_id, created.id, {"alias": created.alias}))
        return created

    def update_identity_provider(self, provider: IdentityProvider) -> IdentityProvider:
        updated = self.store.update(provider.realm_id, models.IDENTITY_PROVIDER, provider)
        self.events.publish(ChangeEvent(IDP_UPDATED, provider.realm_id, updated.id, {"alias": updated.alias}))
        return updated

    def remove_identity_provider(self, realm_id: str, alias: str) -> bool:
        """Delete a provider and its mapper instances.

        Returns:
            True if the provider existed
        """
        provider = self.get_identity_provider(realm_id, alias)
        if provider is None:
            return False
        for mapper in self.store.list_children(realm_id, models.IDP_MAPPER, alias):
            self.store.delete(realm_id, models.IDP_MAPPER, mapper.id)
        self.store.delete(realm_id, models.IDENTITY_PROVIDER, provider.id)
        logger.info("[federation] Identity provider '%s' removed", alias)
        self.events.publish(ChangeEvent(IDP_REMOVED, realm_id, provider.id, {"alias": alias}))
        return True

    def provider_mappers(self, realm_id: str, alias: str) -> list[IdentityProviderMapper]:
        return self.store.list_children(realm_id, models.IDP_MAPPER, alias)

    def add_provider_mapper(self, realm_id: str, mapper: IdentityProviderMapper) -> IdentityProviderMapper:
        """Attach a mapper instance to an existing provider.

        Raises:
            IdentityProviderNotFoundError: If the provider does not exist
            UnknownProviderTypeError: If the mapper type does not suit the provider
            ModelDuplicateError: If the provider already has a mapper with this name
        """
        provider = self.require_identity_provider(realm_id, mapper.identity_provider_alias)
        self.providers.mapper_type(mapper.mapper_type, provider.provider_id)
        mapper.realm_id = realm_id
        return self.store.create(realm_id, models.IDP_MAPPER, mapper)

    # ─────────────────────────────────────────────────────────────────────────
    # Membership
    # ─────────────────────────────────────────────────────────────────────────
    def detach_from_federation(self, realm_id: str, alias: str, federation_id: str) -> str:
        """Drop ``federation_id`` from a provider's memberships.

        A provider whose last membership is dropped is deleted.

        Returns:
            DETACHED, DELETED, or ABSENT when the provider does not exist or
            is not a member of the federation
        """
        provider = self.get_identity_provider(realm_id, alias)
        if provider is None or federation_id not in provider.federations:
            return ABSENT
        if len(provider.federations) == 1:
            self.remove_identity_provider(realm_id, alias)
            return DELETED
        provider.federations.discard(federation_id)
        self.update_identity_provider(provider)
        return DETACHED

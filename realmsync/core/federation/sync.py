"""Federation synchronization: fetch, diff, apply, propagate mappers."""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..events import FEDERATION_SYNCED, ChangeEvent, EventBus
from ..exceptions import MetadataFetchError, RealmSyncError, SyncApplyError
from ..models import (
    FilterSet,
    IdentityProvider,
    IdentityProviderFederation,
    ProviderDescriptor,
    Realm,
)
from ..providers import ProviderTypeRegistry
from ..store import Store
from .differ import diff
from .fetcher import MetadataFetcher
from .service import ABSENT, FederationService

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_FETCH_FAILED = "fetch_failed"
STATUS_LOCKED = "locked"

METADATA_URL_KEY = "metadataDescriptorUrl"
REFRESH_PERIOD_KEY = "refreshPeriod"


@dataclass
class MapperFailure:
    alias: str
    mapper: str
    error: str


@dataclass
class SyncResult:
    federation_id: str
    status: str = STATUS_OK
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    # Fetched ids matching a provider no federation introduced
    skipped: list[str] = field(default_factory=list)
    mapper_failures: list[MapperFailure] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "federationId": self.federation_id,
            "status": self.status,
            "added": list(self.added),
            "updated": list(self.updated),
            "removed": list(self.removed),
            "skipped": list(self.skipped),
            "mapperFailures": [
                {"alias": f.alias, "mapper": f.mapper, "error": f.error} for f in self.mapper_failures
            ],
            "error": self.error,
        }


class FederationSynchronizer:
    """Keeps a federation's identity providers in line with its metadata."""

    def __init__(
        self,
        store: Store,
        fetcher: MetadataFetcher,
        events: Optional[EventBus] = None,
        providers: Optional[ProviderTypeRegistry] = None,
        backfill_mappers: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the synchronizer.

        Args:
            store: Persistence collaborator
            fetcher: Metadata fetcher
            events: Observer list for provider and federation events
            providers: Provider type registry
            backfill_mappers: Also add missing mapper instances when updating
            clock: Wall clock in seconds, used for ``last_refresh``
        """
        self.events = events or EventBus()
        self.federations = FederationService(store, self.events, providers)
        self.fetcher = fetcher
        self.backfill_mappers = backfill_mappers
        self.clock = clock

    def sync_once(self, realm: Realm, federation_id: str) -> SyncResult:
        """Run one synchronization of ``federation_id`` in ``realm``.

        Args:
            realm: Realm owning the federation
            federation_id: Federation id

        Returns:
            SyncResult; ``status`` is ``fetch_failed`` when the metadata could
            not be fetched, in which case nothing was changed

        Raises:
            FederationNotFoundError: If the federation does not exist
            SyncApplyError: If persisting a provider change failed; changes
                applied before the failure stay in place
        """
        federation = self.federations.require_federation(realm.id, federation_id)
        result = SyncResult(federation_id=federation.id)

        try:
            fetched = self.fetcher.fetch(federation.url)
        except MetadataFetchError as exc:
            logger.warning("[federation] Fetch failed for federation '%s': %s", federation.alias, exc)
            result.status = STATUS_FETCH_FAILED
            result.error = str(exc)
            return result

        current = [p.alias for p in self.federations.members(realm.id, federation.id)]
        changes = diff(current, fetched, FilterSet.from_federation(federation))
        logger.info(
            "[federation] Federation '%s': %d to add, %d to update, %d to remove",
            federation.alias, len(changes.to_add), len(changes.to_update), len(changes.to_remove),
        )

        applied = 0
        try:
            for descriptor in changes.to_add:
                if self._add(realm, federation, descriptor, result):
                    applied += 1
            for descriptor in changes.to_update:
                self._update(realm, federation, descriptor, result)
                applied += 1
            for alias in changes.to_remove:
                if self.federations.detach_from_federation(realm.id, alias, federation.id) != ABSENT:
                    result.removed.append(alias)
                applied += 1
        except RealmSyncError as exc:
            logger.error(
                "[federation] Apply failed for federation '%s' after %d operation(s): %s",
                federation.alias, applied, exc,
            )
            raise SyncApplyError(federation.id, applied, exc) from exc

        stored = self.federations.require_federation(realm.id, federation.id)
        stored.last_refresh = int(self.clock() * 1000)
        stored.valid_until = min((d.valid_until for d in fetched if d.valid_until is not None), default=None)
        self.federations.save_federation(stored)
        self.events.publish(ChangeEvent(
            FEDERATION_SYNCED,
            realm.id,
            federation.id,
            {
                "alias": federation.alias,
                "added": len(result.added),
                "updated": len(result.updated),
                "removed": len(result.removed),
            },
        ))
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Apply steps
    # ─────────────────────────────────────────────────────────────────────────
    def _add(
        self,
        realm: Realm,
        federation: IdentityProviderFederation,
        descriptor: ProviderDescriptor,
        result: SyncResult,
    ) -> bool:
        existing = self.federations.get_identity_provider(realm.id, descriptor.id)
        if existing is not None and not existing.federations:
            logger.warning(
                "[federation] Federation '%s' skips '%s': provider exists outside any federation",
                federation.alias, descriptor.id,
            )
            result.skipped.append(descriptor.id)
            return False
        if existing is not None:
            # Already introduced by another federation: join it
            _apply_descriptor(existing, descriptor)
            existing.federations.add(federation.id)
            provider = self.federations.update_identity_provider(existing)
        else:
            provider = IdentityProvider(
                alias=descriptor.id,
                realm_id=realm.id,
                provider_id=descriptor.provider_id or federation.provider_id,
                federations={federation.id},
            )
            _apply_descriptor(provider, descriptor)
            provider = self.federations.create_identity_provider(realm.id, provider)
        result.added.append(provider.alias)
        self._propagate_mappers(realm, federation, provider, result)
        return True

    def _update(
        self,
        realm: Realm,
        federation: IdentityProviderFederation,
        descriptor: ProviderDescriptor,
        result: SyncResult,
    ) -> None:
        provider = self.federations.require_identity_provider(realm.id, descriptor.id)
        _apply_descriptor(provider, descriptor)
        provider = self.federations.update_identity_provider(provider)
        result.updated.append(provider.alias)
        if self.backfill_mappers:
            self._propagate_mappers(realm, federation, provider, result)

    def _propagate_mappers(
        self,
        realm: Realm,
        federation: IdentityProviderFederation,
        provider: IdentityProvider,
        result: SyncResult,
    ) -> None:
        present = {m.name for m in self.federations.provider_mappers(realm.id, provider.alias)}
        for template in federation.mappers:
            if template.name in present:
                continue
            try:
                self.federations.add_provider_mapper(realm.id, template.instantiate(provider.alias, realm.id))
            except RealmSyncError as exc:
                logger.warning(
                    "[federation] Mapper '%s' not applied to '%s': %s", template.name, provider.alias, exc
                )
                result.mapper_failures.append(MapperFailure(provider.alias, template.name, str(exc)))

    # ─────────────────────────────────────────────────────────────────────────
    # Per-provider metadata refresh
    # ─────────────────────────────────────────────────────────────────────────
    def refresh_provider(self, realm: Realm, alias: str) -> bool:
        """Re-fetch one provider's own metadata and update its config.

        The provider's ``metadataDescriptorUrl`` is fetched; the descriptor
        whose id equals the alias (or the first one) supplies the new config.

        Returns:
            True if the provider was updated
        """
        provider = self.federations.require_identity_provider(realm.id, alias)
        locator = provider.config.get(METADATA_URL_KEY)
        if not locator:
            logger.warning("[federation] Identity provider '%s' has no %s", alias, METADATA_URL_KEY)
            return False
        try:
            descriptors = self.fetcher.fetch(locator)
        except MetadataFetchError as exc:
            logger.warning("[federation] Metadata refresh failed for '%s': %s", alias, exc)
            return False
        descriptor = next((d for d in descriptors if d.id == alias), None)
        if descriptor is None and descriptors:
            descriptor = descriptors[0]
        if descriptor is None:
            logger.warning("[federation] No descriptor published at %s", locator)
            return False
        config = dict(provider.config)
        config.update(descriptor.config)
        provider.config = config
        self.federations.update_identity_provider(provider)
        logger.info("[federation] Identity provider '%s' metadata refreshed", alias)
        return True


def _apply_descriptor(provider: IdentityProvider, descriptor: ProviderDescriptor) -> None:
    provider.display_name = descriptor.display_name
    provider.config = dict(descriptor.config)
    provider.enabled = descriptor.enabled
    provider.trust_email = descriptor.trust_email
    provider.link_only = descriptor.link_only

"""Realm manager: the entry points tying bootstrap, federation sync and scheduling together."""
from __future__ import annotations
import functools
import logging
from typing import Optional

from .bootstrap import BootstrapReport, RealmBootstrapper
from .events import REALM_PRE_REMOVE, ChangeEvent, EventBus
from .exceptions import ConfigurationError
from .federation.fetcher import HttpMetadataFetcher, MetadataFetcher
from .federation.service import FederationService
from .federation.sync import (
    METADATA_URL_KEY,
    REFRESH_PERIOD_KEY,
    STATUS_LOCKED,
    FederationSynchronizer,
    SyncResult,
)
from .models import (
    FederationMapper,
    IdentityProvider,
    IdentityProviderFederation,
    Realm,
    RealmImport,
    ScheduledTask,
)
from .providers import ProviderTypeRegistry
from .realm import RealmService
from .registry import DEFAULT_ADMIN_REALM, master_realm_admin_client_id
from .scheduler import (
    ClusterAwareScheduler,
    ClusterAwareTaskRunner,
    InMemoryClusterLock,
    federation_task_name,
    provider_refresh_task_name,
)
from .store import InMemoryStore, Store

logger = logging.getLogger(__name__)


class RealmManager:
    """Creates, imports and removes realms and keeps their federations scheduled.

    Usage:
        manager = RealmManager(store, scheduler=scheduler, fetcher=fetcher)
        master = manager.create_realm("master")
        demo = manager.create_realm("demo")
        federation = manager.create_federation(demo, IdentityProviderFederation(...))
        manager.sync_once(demo, federation.id)
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        scheduler: Optional[ClusterAwareScheduler] = None,
        fetcher: Optional[MetadataFetcher] = None,
        events: Optional[EventBus] = None,
        providers: Optional[ProviderTypeRegistry] = None,
        admin_realm_name: str = DEFAULT_ADMIN_REALM,
        default_refresh_minutes: int = 60,
        backfill_mappers: bool = False,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.events = events or EventBus()
        self.providers = providers or ProviderTypeRegistry()
        self.scheduler = scheduler or ClusterAwareScheduler(InMemoryClusterLock())
        self.fetcher = fetcher or HttpMetadataFetcher()
        self.admin_realm_name = admin_realm_name
        self.default_refresh_minutes = default_refresh_minutes

        self.realms = RealmService(self.store)
        self.bootstrapper = RealmBootstrapper(
            self.store, self.events, admin_realm_name, providers=self.providers
        )
        self.federations = FederationService(self.store, self.events, self.providers)
        self.synchronizer = FederationSynchronizer(
            self.store,
            self.fetcher,
            self.events,
            self.providers,
            backfill_mappers=backfill_mappers,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Realm lifecycle
    # ─────────────────────────────────────────────────────────────────────────
    def get_realm(self, name: str) -> Realm:
        """Return realm ``name``.

        Raises:
            RealmNotFoundError: If the realm does not exist
        """
        return self.realms.require_realm(name)

    def list_realms(self) -> list[Realm]:
        return self.realms.list_realms()

    def create_realm(self, name: str, realm_id: Optional[str] = None) -> Realm:
        """Create a realm and bootstrap its default resources.

        A realm whose bootstrap fails is discarded, so the same name can be
        retried.

        Args:
            name: Realm name
            realm_id: Optional explicit id

        Returns:
            The bootstrapped realm

        Raises:
            ModelDuplicateError: If a realm with this name exists
            InvalidAliasError: If the name contains reserved characters
        """
        realm = self.realms.create_realm_record(name, realm_id)
        try:
            return self.bootstrapper.ensure_defaults(realm).realm
        except Exception:
            self._discard_realm(realm)
            raise

    def import_realm(self, realm_import: RealmImport) -> Realm:
        """Create a realm from an import document.

        Declared federations get their refresh task and declared providers
        with a refresh period get their own metadata refresh task. On any
        failure the partially built realm is discarded.
        """
        realm = self.realms.create_realm_record(realm_import.realm, realm_import.id)
        try:
            realm = self.bootstrapper.ensure_defaults(realm, realm_import).realm
            self._schedule_realm(realm)
        except Exception:
            self._discard_realm(realm)
            raise
        logger.info("[bootstrap] Realm '%s' imported", realm.name)
        return realm

    def ensure_defaults(self, realm: Realm, realm_import: Optional[RealmImport] = None) -> BootstrapReport:
        return self.bootstrapper.ensure_defaults(realm, realm_import)

    def remove_realm(self, realm: Realm) -> bool:
        """Remove a realm with everything scoped to it.

        Cancels the realm's scheduled tasks and removes its master admin
        client from the administration realm.

        Raises:
            ConfigurationError: If asked to remove the administration realm
        """
        if realm.name == self.admin_realm_name:
            raise ConfigurationError(f"Administration realm '{realm.name}' cannot be removed")
        stored = self.realms.get_realm(realm.id)
        if stored is None:
            return False
        self.events.publish(ChangeEvent(REALM_PRE_REMOVE, stored.id, stored.id, {"realm": stored.name}))
        removed = self._drop_realm(stored)
        logger.info("[bootstrap] Realm '%s' removed", stored.name)
        return removed

    def _discard_realm(self, realm: Realm) -> None:
        logger.error("[bootstrap] Bootstrap of realm '%s' failed, discarding it", realm.name)
        stored = self.realms.get_realm(realm.id)
        if stored is not None:
            self._drop_realm(stored)

    def _drop_realm(self, stored: Realm) -> bool:
        self.scheduler.cancel_prefix(f"{stored.id}_")

        admin_realm = self.realms.get_realm_by_name(self.admin_realm_name)
        if admin_realm is not None and admin_realm.id != stored.id:
            client = None
            if stored.master_admin_client_id:
                client = self.realms.get_client_by_uuid(admin_realm.id, stored.master_admin_client_id)
            if client is None:
                # Bootstrap may have failed before the realm recorded its client
                client = self.realms.get_client(admin_realm.id, master_realm_admin_client_id(stored.name))
            if client is not None:
                self.realms.remove_client(admin_realm.id, client)

        return self.realms.delete_realm_record(stored)

    def schedule_all(self) -> list[ScheduledTask]:
        """Schedule the refresh tasks of every stored federation and auto-updating provider.

        Run at startup so a node serving an existing store takes part in the
        periodic syncs.
        """
        tasks = []
        for realm in self.list_realms():
            tasks.extend(self._schedule_realm(realm))
        logger.info("[scheduler] %d refresh task(s) scheduled from the store", len(tasks))
        return tasks

    def _schedule_realm(self, realm: Realm) -> list[ScheduledTask]:
        tasks = [self.schedule_federation(realm, f.id) for f in self.federations.list_federations(realm.id)]
        for provider in self.federations.list_identity_providers(realm.id):
            if _auto_updates(provider):
                tasks.append(self.schedule_provider_refresh(realm, provider.alias))
        return tasks

    # ─────────────────────────────────────────────────────────────────────────
    # Federations
    # ─────────────────────────────────────────────────────────────────────────
    def create_federation(self, realm: Realm, federation: IdentityProviderFederation) -> IdentityProviderFederation:
        """Persist a federation and schedule its refresh task."""
        created = self.federations.create_federation(realm.id, federation)
        self.schedule_federation(realm, created.id)
        return created

    def remove_federation(self, realm: Realm, federation_id: str) -> list[str]:
        """Cancel the refresh task, then detach/delete the members and the federation.

        Returns:
            Aliases of the identity providers that were deleted
        """
        self.federations.require_federation(realm.id, federation_id)
        self.unschedule_federation(realm, federation_id)
        return self.federations.remove_federation(realm.id, federation_id)

    def add_federation_mapper(self, realm: Realm, federation_id: str, mapper: FederationMapper) -> FederationMapper:
        return self.federations.add_mapper(realm.id, federation_id, mapper)

    def schedule_federation(
        self,
        realm: Realm,
        federation_id: str,
        interval_seconds: Optional[float] = None,
    ) -> ScheduledTask:
        """Schedule the periodic sync of one federation.

        Args:
            realm: Realm owning the federation
            federation_id: Federation id
            interval_seconds: Override of the federation's refresh interval

        Returns:
            The scheduled task
        """
        federation = self.federations.require_federation(realm.id, federation_id)
        interval = interval_seconds or federation.interval_seconds
        return self.scheduler.schedule(
            federation_task_name(realm.id, federation.id),
            interval,
            functools.partial(self._run_federation_sync, realm.id, federation.id),
        )

    def unschedule_federation(self, realm: Realm, federation_id: str) -> bool:
        return self.scheduler.cancel(federation_task_name(realm.id, federation_id))

    def sync_once(self, realm: Realm, federation_id: str) -> SyncResult:
        """Run one synchronization now, under the federation's cluster lock.

        Returns:
            SyncResult; ``status`` is ``locked`` and nothing is touched when
            another window of the same federation holds the lock

        Raises:
            FederationNotFoundError: If the federation does not exist
            SyncApplyError: If persisting a provider change failed
        """
        federation = self.federations.require_federation(realm.id, federation_id)
        results: list[SyncResult] = []
        window = ScheduledTask(
            federation_task_name(realm.id, federation.id),
            federation.interval_seconds,
            lambda: results.append(self.synchronizer.sync_once(realm, federation.id)),
        )
        if not ClusterAwareTaskRunner(self.scheduler.lock, window).run(propagate=True):
            logger.info("[federation] Sync of '%s' already in progress, not started", federation.alias)
            return SyncResult(federation_id=federation.id, status=STATUS_LOCKED)
        return results[0]

    def _run_federation_sync(self, realm_id: str, federation_id: str) -> None:
        realm = self.realms.get_realm(realm_id)
        if realm is None:
            logger.warning("[scheduler] Realm '%s' is gone, skipping federation sync", realm_id)
            return
        result = self.synchronizer.sync_once(realm, federation_id)
        logger.info(
            "[federation] Sync of '%s' finished: %s (+%d ~%d -%d)",
            federation_id, result.status, len(result.added), len(result.updated), len(result.removed),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Identity providers
    # ─────────────────────────────────────────────────────────────────────────
    def create_identity_provider(self, realm: Realm, provider: IdentityProvider) -> IdentityProvider:
        created = self.federations.create_identity_provider(realm.id, provider)
        if _auto_updates(created):
            self.schedule_provider_refresh(realm, created.alias)
        return created

    def remove_identity_provider(self, realm: Realm, alias: str) -> bool:
        self.scheduler.cancel(provider_refresh_task_name(realm.id, alias))
        return self.federations.remove_identity_provider(realm.id, alias)

    def schedule_provider_refresh(self, realm: Realm, alias: str) -> ScheduledTask:
        """Schedule the metadata refresh of a single identity provider.

        Raises:
            IdentityProviderNotFoundError: If the provider does not exist
            ConfigurationError: If the provider has no refresh period or
                metadata descriptor URL
        """
        provider = self.federations.require_identity_provider(realm.id, alias)
        period = _refresh_period(provider)
        if period <= 0 or not provider.config.get(METADATA_URL_KEY):
            raise ConfigurationError(
                f"Identity provider '{alias}' needs {REFRESH_PERIOD_KEY} and {METADATA_URL_KEY} to auto-update"
            )
        return self.scheduler.schedule(
            provider_refresh_task_name(realm.id, alias),
            period,
            functools.partial(self._run_provider_refresh, realm.id, alias),
        )

    def _run_provider_refresh(self, realm_id: str, alias: str) -> None:
        realm = self.realms.get_realm(realm_id)
        if realm is None:
            return
        self.synchronizer.refresh_provider(realm, alias)

    def close(self) -> None:
        self.scheduler.shutdown()


def _auto_updates(provider: IdentityProvider) -> bool:
    return _refresh_period(provider) > 0 and bool(provider.config.get(METADATA_URL_KEY))


def _refresh_period(provider: IdentityProvider) -> int:
    try:
        return int(provider.config.get(REFRESH_PERIOD_KEY) or 0)
    except ValueError:
        logger.warning("[federation] Ignoring invalid %s on '%s'", REFRESH_PERIOD_KEY, provider.alias)
        return 0

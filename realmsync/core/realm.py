"""Realm and client management operations."""
from __future__ import annotations
import logging
from typing import Optional

from . import models
from .exceptions import RealmNotFoundError
from .models import Client, Realm
from .store import Store
from .validators import validate_reserved_chars

logger = logging.getLogger(__name__)


class RealmService:
    """Service for managing realm records and their clients."""

    def __init__(self, store: Store):
        """Initialize realm service.

        Args:
            store: Persistence collaborator
        """
        self.store = store

    # ─────────────────────────────────────────────────────────────────────────
    # Realms
    # ─────────────────────────────────────────────────────────────────────────
    def get_realm(self, realm_id: str) -> Optional[Realm]:
        return self.store.get(None, models.REALM, realm_id)

    def get_realm_by_name(self, name: str) -> Optional[Realm]:
        for realm in self.store.list_children(None, models.REALM):
            if realm.name == name:
                return realm
        return None

    def require_realm(self, name: str) -> Realm:
        """Return the realm named ``name``.

        Raises:
            RealmNotFoundError: If the realm does not exist
        """
        realm = self.get_realm_by_name(name)
        if realm is None:
            raise RealmNotFoundError(f"Realm '{name}' not found")
        return realm

    def list_realms(self) -> list[Realm]:
        return sorted(self.store.list_children(None, models.REALM), key=lambda r: r.name)

    def realm_exists(self, name: str) -> bool:
        return self.get_realm_by_name(name) is not None

    def create_realm_record(self, name: str, realm_id: Optional[str] = None) -> Realm:
        """Persist a bare realm record (no defaults).

        Args:
            name: Realm name
            realm_id: Explicit id (e.g. from an import document)

        Returns:
            The stored realm
        """
        name = validate_reserved_chars(name, "Realm name")
        realm = Realm(name=name)
        if realm_id and realm_id.strip():
            realm.id = validate_reserved_chars(realm_id, "Realm id")
        created = self.store.create(None, models.REALM, realm)
        logger.info("[realm] Realm '%s' created", name)
        return created

    def save_realm(self, realm: Realm) -> Realm:
        return self.store.update(None, models.REALM, realm)

    def delete_realm_record(self, realm: Realm) -> bool:
        return self.store.delete(None, models.REALM, realm.id)

    # ─────────────────────────────────────────────────────────────────────────
    # Clients
    # ─────────────────────────────────────────────────────────────────────────
    def get_client(self, realm_id: str, client_id: str) -> Optional[Client]:
        """Return the client matching ``client_id``, if it exists.

        Args:
            realm_id: Realm id
            client_id: Client identifier (not the entity id)

        Returns:
            Client or None if not found
        """
        for client in self.store.list_children(realm_id, models.CLIENT):
            if client.client_id == client_id:
                return client
        return None

    def get_client_by_uuid(self, realm_id: str, client_uuid: str) -> Optional[Client]:
        return self.store.get(realm_id, models.CLIENT, client_uuid)

    def create_client(self, realm_id: str, client: Client) -> Client:
        client.realm_id = realm_id
        created = self.store.create(realm_id, models.CLIENT, client)
        logger.info("[realm] Client '%s' created", client.client_id)
        return created

    def create_management_client(self, realm_id: str, client_id: str) -> Client:
        """Create a bearer-only management client (holds admin roles only)."""
        return self.create_client(
            realm_id,
            Client(
                client_id=client_id,
                realm_id=realm_id,
                bearer_only=True,
                standard_flow_enabled=False,
            ),
        )

    def save_client(self, client: Client) -> Client:
        return self.store.update(client.realm_id, models.CLIENT, client)

    def remove_client(self, realm_id: str, client: Client) -> bool:
        """Remove a client together with its client roles.

        Composite references to the removed roles are dropped as well.
        """
        removed_ids = set()
        for role in self.store.list_children(realm_id, models.ROLE, client.id):
            self.store.delete(realm_id, models.ROLE, role.id)
            removed_ids.add(role.id)
        if removed_ids:
            for role in self.store.list_children(realm_id, models.ROLE):
                if role.composite_ids & removed_ids:
                    role.composite_ids -= removed_ids
                    self.store.update(realm_id, models.ROLE, role)
        removed = self.store.delete(realm_id, models.CLIENT, client.id)
        if removed:
            logger.info("[realm] Client '%s' removed", client.client_id)
        return removed

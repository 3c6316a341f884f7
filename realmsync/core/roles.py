"""Role management and composite-role graph integrity."""
from __future__ import annotations
import logging
from typing import Optional

from . import models
from .exceptions import CompositeRoleCycleError, RoleNotFoundError
from .models import Role
from .store import Store

logger = logging.getLogger(__name__)


class RoleService:
    """Service for managing realm and client roles."""

    def __init__(self, store: Store):
        """Initialize role service.

        Args:
            store: Persistence collaborator
        """
        self.store = store

    def get_role(self, realm_id: str, name: str, client_uuid: Optional[str] = None) -> Optional[Role]:
        """Look up a realm role, or a client role when ``client_uuid`` is given.

        Args:
            realm_id: Realm id
            name: Role name
            client_uuid: Owning client's entity id for client roles

        Returns:
            Role or None if not found
        """
        if client_uuid is None:
            candidates = self.store.list_children(realm_id, models.ROLE)
        else:
            candidates = self.store.list_children(realm_id, models.ROLE, client_uuid)
        for role in candidates:
            if role.name == name and role.client_id == client_uuid:
                return role
        return None

    def get_role_by_id(self, realm_id: str, role_id: str) -> Optional[Role]:
        return self.store.get(realm_id, models.ROLE, role_id)

    def realm_roles(self, realm_id: str) -> list[Role]:
        return [r for r in self.store.list_children(realm_id, models.ROLE) if r.client_id is None]

    def client_roles(self, realm_id: str, client_uuid: str) -> list[Role]:
        return self.store.list_children(realm_id, models.ROLE, client_uuid)

    def add_role(
        self,
        realm_id: str,
        name: str,
        client_uuid: Optional[str] = None,
        description: str = "",
    ) -> Role:
        """Idempotently create a realm-level or client-level role.

        An existing role is returned unchanged.

        Args:
            realm_id: Realm id
            name: Role name
            client_uuid: Owning client's entity id, None for a realm role
            description: Role description (only used on creation)

        Returns:
            The stored role
        """
        existing = self.get_role(realm_id, name, client_uuid)
        if existing is not None:
            return existing
        role = Role(name=name, realm_id=realm_id, client_id=client_uuid, description=description)
        created = self.store.create(realm_id, models.ROLE, role)
        logger.debug("[roles] Role '%s' created in realm '%s'", name, realm_id)
        return created

    def add_composite(self, realm_id: str, parent: Role, child: Role) -> Role:
        """Make ``child`` a composite of ``parent``.

        Args:
            realm_id: Realm id of ``parent``
            parent: Composite role
            child: Role to imply, from the same realm

        Returns:
            Updated parent role

        Raises:
            CompositeRoleCycleError: If ``parent`` is reachable from ``child``
            RoleNotFoundError: If ``parent`` no longer exists
        """
        current = self.store.get(realm_id, models.ROLE, parent.id)
        if current is None:
            raise RoleNotFoundError(f"Role '{parent.name}' not found")
        if child.id in current.composite_ids:
            return current
        if child.id == current.id or self._reaches(child, current.id):
            raise CompositeRoleCycleError(
                f"Adding '{child.name}' to '{current.name}' would create a composite cycle"
            )
        current.composite_ids.add(child.id)
        return self.store.update(realm_id, models.ROLE, current)

    def remove_composite(self, realm_id: str, parent: Role, child: Role) -> Role:
        current = self.store.get(realm_id, models.ROLE, parent.id)
        if current is None:
            raise RoleNotFoundError(f"Role '{parent.name}' not found")
        current.composite_ids.discard(child.id)
        return self.store.update(realm_id, models.ROLE, current)

    def effective_role_ids(self, role: Role) -> set[str]:
        """Return ids of ``role`` and every role it implies, transitively."""
        seen: set[str] = set()
        stack = [role]
        while stack:
            current = stack.pop()
            if current.id in seen:
                continue
            seen.add(current.id)
            for child_id in current.composite_ids:
                child = self.store.get(current.realm_id, models.ROLE, child_id)
                if child is not None:
                    stack.append(child)
        return seen

    def _reaches(self, start: Role, target_id: str) -> bool:
        return target_id in self.effective_role_ids(start)

"""Typed exceptions for realm bootstrap and federation synchronization."""


class RealmSyncError(Exception):
    """Base exception for all realmsync operations."""
    pass


# ─────────────────────────────────────────────────────────────────────────────
# Configuration errors: fatal to the current operation, never retried
# ─────────────────────────────────────────────────────────────────────────────
class ConfigurationError(RealmSyncError):
    """Operation cannot succeed with the current configuration."""
    pass


class CircularDependencyError(ConfigurationError):
    """Default resources still unresolvable after the postponement retry.

    Attributes:
        unresolved: Names of the resources left unresolved
    """

    def __init__(self, unresolved: list[str]):
        self.unresolved = list(unresolved)
        super().__init__(f"Unresolvable default resources after retry: {', '.join(self.unresolved)}")


class DuplicateMapperError(ConfigurationError):
    """Federation mapper name must be unique per federation."""
    pass


class DefaultRoleNameExhaustedError(ConfigurationError):
    """No free default-role name left in the numeric suffix space."""
    pass


class CompositeRoleCycleError(ConfigurationError):
    """Adding the composite would create a cycle in the role graph."""
    pass


class UnknownProviderTypeError(ConfigurationError):
    """Provider type id is not registered."""
    pass


class InvalidAliasError(ConfigurationError):
    """Alias or name contains reserved characters."""
    pass


# ─────────────────────────────────────────────────────────────────────────────
# Transient collaborator errors: abandon the cycle, next window retries
# ─────────────────────────────────────────────────────────────────────────────
class TransientError(RealmSyncError):
    """Collaborator failed in a way that may succeed on the next attempt."""
    pass


class MetadataFetchError(TransientError):
    """Federation metadata could not be fetched or parsed.

    Attributes:
        locator: Source URL that failed
    """

    def __init__(self, locator: str, message: str):
        self.locator = locator
        self.message = message
        super().__init__(f"{locator}: {message}")


class PersistenceError(TransientError):
    """Storage call failed."""
    pass


class LockUnavailableError(TransientError):
    """Cluster lock backend could not be reached."""
    pass


class SyncApplyError(RealmSyncError):
    """Federation apply step failed partway through.

    Already-applied provider operations stay in place.

    Attributes:
        federation_id: Federation being synchronized
        applied: Number of provider operations committed before the failure
    """

    def __init__(self, federation_id: str, applied: int, cause: Exception):
        self.federation_id = federation_id
        self.applied = applied
        self.cause = cause
        super().__init__(
            f"Federation '{federation_id}' apply failed after {applied} operation(s): {cause}"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Lookups
# ─────────────────────────────────────────────────────────────────────────────
class ModelDuplicateError(RealmSyncError):
    """Entity with the same unique key already exists."""
    pass


class RealmNotFoundError(RealmSyncError):
    """Realm does not exist."""
    pass


class RoleNotFoundError(RealmSyncError):
    """Role does not exist in realm."""
    pass


class IdentityProviderNotFoundError(RealmSyncError):
    """Identity provider does not exist in realm."""
    pass


class FederationNotFoundError(RealmSyncError):
    """Identity provider federation does not exist in realm."""
    pass

"""Federation descriptor differ.

Pure functions: given the aliases currently linked to a federation and a freshly
fetched descriptor set, decide which providers to add, update and remove.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable

from ..models import FilterSet, ProviderDescriptor


@dataclass
class FederationDiff:
    to_add: list[ProviderDescriptor] = field(default_factory=list)
    to_update: list[ProviderDescriptor] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.to_add or self.to_update or self.to_remove)


def _categories_overlap(
    descriptor_categories: dict[str, list[str]],
    filter_categories: tuple[tuple[str, frozenset[str]], ...],
) -> bool:
    for attribute, values in filter_categories:
        if values.intersection(descriptor_categories.get(attribute, ())):
            return True
    return False


def passes_filters(descriptor: ProviderDescriptor, filters: FilterSet) -> bool:
    """Apply the federation filters to one descriptor.

    Order: entity-id deny, entity-id allow, registration-authority deny and
    allow, category deny and allow. An empty allow list admits everything;
    a deny match always rejects.
    """
    if descriptor.id in filters.entity_id_deny:
        return False
    if filters.entity_id_allow and descriptor.id not in filters.entity_id_allow:
        return False

    authority = descriptor.registration_authority
    if authority is not None and authority in filters.registration_authority_deny:
        return False
    if filters.registration_authority_allow and authority not in filters.registration_authority_allow:
        return False

    if _categories_overlap(descriptor.categories, filters.category_deny):
        return False
    if filters.category_allow and not _categories_overlap(descriptor.categories, filters.category_allow):
        return False
    return True


def diff(
    current_ids: Iterable[str],
    fetched: Iterable[ProviderDescriptor],
    filters: FilterSet,
) -> FederationDiff:
    """Compute the minimal change set for one federation.

    Args:
        current_ids: Aliases of identity providers currently in the federation
        fetched: Descriptors from the latest metadata fetch
        filters: Federation allow/deny filters

    Returns:
        FederationDiff whose three lists are pairwise disjoint; duplicate
        descriptor ids keep their first occurrence
    """
    current = set(current_ids)
    seen: set[str] = set()
    accepted: dict[str, ProviderDescriptor] = {}
    for descriptor in fetched:
        if descriptor.id in seen:
            continue
        seen.add(descriptor.id)
        if passes_filters(descriptor, filters):
            accepted[descriptor.id] = descriptor

    result = FederationDiff()
    for provider_id, descriptor in accepted.items():
        if provider_id in current:
            result.to_update.append(descriptor)
        else:
            result.to_add.append(descriptor)
    result.to_remove = sorted(current - accepted.keys())
    return result

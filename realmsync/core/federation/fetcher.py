"""Metadata fetcher interface and the HTTP/JSON reference implementation."""
from __future__ import annotations
import logging
from typing import Any, Optional, Protocol

import requests

from ..exceptions import MetadataFetchError
from ..models import ProviderDescriptor

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10


class MetadataFetcher(Protocol):
    def fetch(self, locator: str) -> list[ProviderDescriptor]:
        """Return the descriptors published at ``locator``.

        Raises:
            MetadataFetchError: On transport, timeout or parse failure
        """
        ...


def _as_str_dict(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def _as_categories(value: Any) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    categories = {}
    for attribute, values in value.items():
        if isinstance(values, (list, tuple)):
            categories[str(attribute)] = [str(v) for v in values]
        else:
            categories[str(attribute)] = [str(values)]
    return categories


def _as_millis(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def parse_descriptor(entry: dict) -> ProviderDescriptor:
    """Build a ProviderDescriptor from one JSON object.

    Accepts ``id`` or ``entityId`` as the identifier.

    Raises:
        ValueError: If the entry carries no identifier
    """
    provider_id = entry.get("id") or entry.get("entityId")
    if not provider_id:
        raise ValueError("descriptor without 'id'")
    return ProviderDescriptor(
        id=str(provider_id),
        display_name=str(entry.get("displayName") or ""),
        categories=_as_categories(entry.get("categories")),
        registration_authority=entry.get("registrationAuthority"),
        config=_as_str_dict(entry.get("config")),
        provider_id=entry.get("providerId"),
        enabled=bool(entry.get("enabled", True)),
        trust_email=bool(entry.get("trustEmail", False)),
        link_only=bool(entry.get("linkOnly", False)),
        valid_until=_as_millis(entry.get("validUntil")),
    )


def parse_document(document: Any) -> list[ProviderDescriptor]:
    """Parse a descriptor list or an ``{"entities": [...]}`` wrapper.

    A wrapper-level ``validUntil`` applies to every entity that does not carry
    its own.
    """
    valid_until = None
    if isinstance(document, dict):
        valid_until = _as_millis(document.get("validUntil"))
        document = document.get("entities")
    if not isinstance(document, list):
        raise ValueError("expected a list of descriptors or an object with 'entities'")
    descriptors = [parse_descriptor(entry) for entry in document if isinstance(entry, dict)]
    if valid_until is not None:
        for descriptor in descriptors:
            if descriptor.valid_until is None:
                descriptor.valid_until = valid_until
    return descriptors


class HttpMetadataFetcher:
    """Fetch JSON federation metadata over HTTP.

    Usage:
        fetcher = HttpMetadataFetcher(timeout=5)
        descriptors = fetcher.fetch("https://mds.example.org/entities.json")
    """

    def __init__(self, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        """Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds (defaults to REQUEST_TIMEOUT)
            session: Optional requests session (connection reuse, custom headers)
        """
        self.timeout = timeout or REQUEST_TIMEOUT
        self.session = session

    def fetch(self, locator: str) -> list[ProviderDescriptor]:
        """Download and parse the metadata document at ``locator``.

        Args:
            locator: Metadata URL

        Returns:
            Parsed descriptors in document order

        Raises:
            MetadataFetchError: On HTTP error, timeout or malformed document
        """
        getter = self.session.get if self.session is not None else requests.get
        try:
            resp = getter(locator, headers={"Accept": "application/json"}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise MetadataFetchError(locator, f"request failed: {exc}") from exc
        self._handle_error(locator, resp)
        try:
            descriptors = parse_document(resp.json())
        except ValueError as exc:
            raise MetadataFetchError(locator, f"invalid metadata: {exc}") from exc
        logger.debug("[federation] Fetched %d descriptor(s) from %s", len(descriptors), locator)
        return descriptors

    def _handle_error(self, locator: str, resp: requests.Response) -> None:
        if resp.status_code >= 400:
            raise MetadataFetchError(locator, f"[{resp.status_code}] {resp.text[:200]}")

"""Admin routes for realms, identity providers and federations (JSON only)."""
from __future__ import annotations
from typing import Any, Optional

from flask import Blueprint, abort, current_app, jsonify, request

from realmsync.core.federation.sync import STATUS_FETCH_FAILED, STATUS_LOCKED
from realmsync.core.manager import RealmManager
from realmsync.core.models import (
    FederationMapper,
    IdentityProvider,
    IdentityProviderFederation,
    Realm,
)
from realmsync.core.validators import validate_refresh_interval

bp = Blueprint("admin", __name__)

SECRET_MARKERS = ("secret", "password", "privatekey")
SECRET_MASK = "**********"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────
def _manager() -> RealmManager:
    return current_app.extensions["realmsync"]


def _realm(name: str) -> Realm:
    return _manager().get_realm(name)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400, description="Request body must be a JSON object")
    return payload


def _require(payload: dict, field: str) -> Any:
    value = payload.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        abort(400, description=f"'{field}' is required")
    return value


def _int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        abort(400, description=f"Query parameter '{name}' must be an integer")


def _bool_arg(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def strip_secrets(config: dict[str, str]) -> dict[str, str]:
    """Mask config values whose key looks like a credential."""
    return {
        key: (SECRET_MASK if any(marker in key.lower() for marker in SECRET_MARKERS) else value)
        for key, value in config.items()
    }


# ─────────────────────────────────────────────────────────────────────────────
# Representations
# ─────────────────────────────────────────────────────────────────────────────
def realm_to_dict(realm: Realm) -> dict:
    return {
        "id": realm.id,
        "realm": realm.name,
        "enabled": realm.enabled,
        "sslRequired": realm.ssl_required,
        "defaultRoleId": realm.default_role_id,
    }


def provider_to_dict(provider: IdentityProvider, brief: bool = False) -> dict:
    data = {
        "alias": provider.alias,
        "displayName": provider.display_name,
        "providerId": provider.provider_id,
        "enabled": provider.enabled,
    }
    if brief:
        return data
    data.update({
        "internalId": provider.id,
        "trustEmail": provider.trust_email,
        "linkOnly": provider.link_only,
        "config": strip_secrets(provider.config),
        "federations": sorted(provider.federations),
    })
    return data


def mapper_to_dict(mapper: FederationMapper) -> dict:
    return {
        "id": mapper.id,
        "name": mapper.name,
        "identityProviderMapper": mapper.mapper_type,
        "federationId": mapper.federation_id,
        "config": dict(mapper.config),
    }


def federation_to_dict(federation: IdentityProviderFederation) -> dict:
    return {
        "internalId": federation.id,
        "alias": federation.alias,
        "providerId": federation.provider_id,
        "displayName": federation.display_name,
        "url": federation.url,
        "updateFrequencyInMins": federation.update_frequency_minutes,
        "lastMetadataRefreshTimestamp": federation.last_refresh,
        "validUntilTimestamp": federation.valid_until,
        "entityIdDenyList": list(federation.entity_id_deny),
        "entityIdAllowList": list(federation.entity_id_allow),
        "registrationAuthorityDenyList": list(federation.registration_authority_deny),
        "registrationAuthorityAllowList": list(federation.registration_authority_allow),
        "categoryDenyList": {k: list(v) for k, v in federation.category_deny.items()},
        "categoryAllowList": {k: list(v) for k, v in federation.category_allow.items()},
        "config": strip_secrets(federation.config),
        "federationMappers": [mapper_to_dict(m) for m in federation.mappers],
    }


def _mapper_from_dict(payload: dict) -> FederationMapper:
    return FederationMapper(
        name=str(_require(payload, "name")).strip(),
        mapper_type=str(payload.get("identityProviderMapper") or _require(payload, "mapperType")),
        federation_id="",
        config={str(k): str(v) for k, v in (payload.get("config") or {}).items()},
    )


def _refresh_minutes(payload: dict) -> int:
    return validate_refresh_interval(payload.get("updateFrequencyInMins") or _manager().default_refresh_minutes)


def _federation_from_dict(realm: Realm, payload: dict) -> IdentityProviderFederation:
    categories_deny = payload.get("categoryDenyList") or {}
    categories_allow = payload.get("categoryAllowList") or {}
    if not isinstance(categories_deny, dict) or not isinstance(categories_allow, dict):
        abort(400, description="Category lists must map attribute names to value lists")
    return IdentityProviderFederation(
        alias=str(_require(payload, "alias")),
        realm_id=realm.id,
        url=str(_require(payload, "url")),
        provider_id=payload.get("providerId") or "saml",
        display_name=payload.get("displayName") or "",
        update_frequency_minutes=_refresh_minutes(payload),
        entity_id_deny=list(payload.get("entityIdDenyList") or []),
        entity_id_allow=list(payload.get("entityIdAllowList") or []),
        registration_authority_deny=list(payload.get("registrationAuthorityDenyList") or []),
        registration_authority_allow=list(payload.get("registrationAuthorityAllowList") or []),
        category_deny={str(k): list(v) for k, v in categories_deny.items()},
        category_allow={str(k): list(v) for k, v in categories_allow.items()},
        config={str(k): str(v) for k, v in (payload.get("config") or {}).items()},
        mappers=[_mapper_from_dict(m) for m in payload.get("federationMappers") or []],
    )


def _provider_from_dict(realm: Realm, payload: dict) -> IdentityProvider:
    return IdentityProvider(
        alias=str(_require(payload, "alias")),
        realm_id=realm.id,
        provider_id=str(_require(payload, "providerId")),
        display_name=payload.get("displayName") or "",
        enabled=bool(payload.get("enabled", True)),
        trust_email=bool(payload.get("trustEmail", False)),
        link_only=bool(payload.get("linkOnly", False)),
        config={str(k): str(v) for k, v in (payload.get("config") or {}).items()},
    )


# ─────────────────────────────────────────────────────────────────────────────
# Realms
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/realms", methods=["GET"])
def list_realms():
    return jsonify([realm_to_dict(r) for r in _manager().list_realms()])


@bp.route("/realms", methods=["POST"])
def create_realm():
    """Create a realm and bootstrap its defaults.

    Returns:
        201 Created with the realm representation
    """
    payload = _json_body()
    realm = _manager().create_realm(str(_require(payload, "realm")), payload.get("id"))
    return jsonify(realm_to_dict(realm)), 201


@bp.route("/realms/<realm_name>", methods=["GET"])
def get_realm(realm_name: str):
    return jsonify(realm_to_dict(_realm(realm_name)))


@bp.route("/realms/<realm_name>", methods=["DELETE"])
def delete_realm(realm_name: str):
    _manager().remove_realm(_realm(realm_name))
    return ("", 204)


# ─────────────────────────────────────────────────────────────────────────────
# Identity providers
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/realms/<realm_name>/identity-provider/instances", methods=["GET"])
def list_identity_providers(realm_name: str):
    """List identity providers.

    Query parameters:
        brief: Only alias, display name, type and enabled flag
        keyword: Substring match on alias or display name ("quoted" for exact)
        first: Offset of the first result
        max: Page size
    """
    realm = _realm(realm_name)
    providers = _manager().federations.search_identity_providers(
        realm.id,
        keyword=request.args.get("keyword"),
        first=_int_arg("first", 0),
        max_results=_int_arg("max"),
    )
    brief = _bool_arg("brief")
    return jsonify([provider_to_dict(p, brief=brief) for p in providers])


@bp.route("/realms/<realm_name>/identity-provider/instances", methods=["POST"])
def create_identity_provider(realm_name: str):
    realm = _realm(realm_name)
    provider = _manager().create_identity_provider(realm, _provider_from_dict(realm, _json_body()))
    return jsonify(provider_to_dict(provider)), 201


@bp.route("/realms/<realm_name>/identity-provider/instances/<path:alias>", methods=["GET"])
def get_identity_provider(realm_name: str, alias: str):
    realm = _realm(realm_name)
    return jsonify(provider_to_dict(_manager().federations.require_identity_provider(realm.id, alias)))


@bp.route("/realms/<realm_name>/identity-provider/instances/<path:alias>", methods=["DELETE"])
def delete_identity_provider(realm_name: str, alias: str):
    realm = _realm(realm_name)
    if not _manager().remove_identity_provider(realm, alias):
        abort(404, description=f"Identity provider '{alias}' not found")
    return ("", 204)


@bp.route("/realms/<realm_name>/identity-provider/types-used", methods=["GET"])
def types_used(realm_name: str):
    realm = _realm(realm_name)
    return jsonify(_manager().federations.types_used(realm.id))


@bp.route("/realms/<realm_name>/identity-provider/providers/<provider_id>", methods=["GET"])
def get_provider_type(realm_name: str, provider_id: str):
    """Describe an identity provider type; unknown types answer 400."""
    _realm(realm_name)
    registry = _manager().providers
    provider_type = registry.identity_provider_type(provider_id)
    data = provider_type.to_dict()
    data["mapperTypes"] = [m.to_dict() for m in registry.mapper_types_for(provider_id)]
    return jsonify(data)


# ─────────────────────────────────────────────────────────────────────────────
# Federations
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/realms/<realm_name>/identity-provider-federations", methods=["GET"])
def list_federations(realm_name: str):
    realm = _realm(realm_name)
    return jsonify([federation_to_dict(f) for f in _manager().federations.list_federations(realm.id)])


@bp.route("/realms/<realm_name>/identity-provider-federations", methods=["POST"])
def create_federation(realm_name: str):
    """Create a federation and schedule its periodic sync.

    Returns:
        201 Created with the federation representation
    """
    realm = _realm(realm_name)
    federation = _manager().create_federation(realm, _federation_from_dict(realm, _json_body()))
    return jsonify(federation_to_dict(federation)), 201


@bp.route("/realms/<realm_name>/identity-provider-federations/<federation_id>", methods=["GET"])
def get_federation(realm_name: str, federation_id: str):
    realm = _realm(realm_name)
    return jsonify(federation_to_dict(_manager().federations.require_federation(realm.id, federation_id)))


@bp.route("/realms/<realm_name>/identity-provider-federations/<federation_id>", methods=["DELETE"])
def delete_federation(realm_name: str, federation_id: str):
    realm = _realm(realm_name)
    deleted = _manager().remove_federation(realm, federation_id)
    return jsonify({"deletedIdentityProviders": deleted})


@bp.route("/realms/<realm_name>/identity-provider-federations/<federation_id>/refresh", methods=["POST"])
def refresh_federation(realm_name: str, federation_id: str):
    """Run one synchronization now.

    A failed fetch answers 502; a window already running anywhere in the
    cluster answers 409.
    """
    realm = _realm(realm_name)
    result = _manager().sync_once(realm, federation_id)
    status = {STATUS_FETCH_FAILED: 502, STATUS_LOCKED: 409}.get(result.status, 200)
    return jsonify(result.to_dict()), status


@bp.route("/realms/<realm_name>/identity-provider-federations/<federation_id>/mappers", methods=["GET"])
def list_federation_mappers(realm_name: str, federation_id: str):
    realm = _realm(realm_name)
    federation = _manager().federations.require_federation(realm.id, federation_id)
    return jsonify([mapper_to_dict(m) for m in federation.mappers])


@bp.route("/realms/<realm_name>/identity-provider-federations/<federation_id>/mappers", methods=["POST"])
def add_federation_mapper(realm_name: str, federation_id: str):
    realm = _realm(realm_name)
    mapper = _manager().add_federation_mapper(realm, federation_id, _mapper_from_dict(_json_body()))
    return jsonify(mapper_to_dict(mapper)), 201

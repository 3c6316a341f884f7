"""Tests for federation synchronization: fetch, diff, apply and mapper propagation."""
import pytest

from realmsync.core.events import FEDERATION_SYNCED, IDP_CREATED
from realmsync.core.exceptions import FederationNotFoundError, SyncApplyError
from realmsync.core.federation.sync import STATUS_FETCH_FAILED, STATUS_OK, FederationSynchronizer
from realmsync.core.models import FederationMapper, IdentityProvider, IdentityProviderFederation

URL = "https://mds.example.org/entities.json"


@pytest.fixture()
def federation(manager, demo_realm):
    return manager.create_federation(demo_realm, IdentityProviderFederation(
        alias="edugain",
        realm_id="",
        url=URL,
        mappers=[
            FederationMapper(name="affiliation", mapper_type="saml-user-attribute-idp-mapper", federation_id=""),
            FederationMapper(name="member", mapper_type="hardcoded-role-idp-mapper", federation_id=""),
        ],
    ))


def _aliases(manager, realm):
    return [p.alias for p in manager.federations.list_identity_providers(realm.id)]


def test_initial_sync_creates_providers_with_mappers(manager, demo_realm, federation, fetcher, make_descriptor):
    fetcher.publish(URL, [make_descriptor("p1"), make_descriptor("p2")])

    result = manager.sync_once(demo_realm, federation.id)

    assert result.status == STATUS_OK
    assert result.added == ["p1", "p2"]
    assert _aliases(manager, demo_realm) == ["p1", "p2"]
    p1 = manager.federations.require_identity_provider(demo_realm.id, "p1")
    assert p1.federations == {federation.id}
    assert p1.provider_id == "saml"
    assert p1.display_name == "P1"
    mappers = manager.federations.provider_mappers(demo_realm.id, "p1")
    assert sorted(m.name for m in mappers) == ["affiliation", "member"]


def test_second_sync_adds_updates_and_removes(manager, demo_realm, federation, fetcher, make_descriptor):
    fetcher.publish(URL, [make_descriptor("p1"), make_descriptor("p2")])
    manager.sync_once(demo_realm, federation.id)

    fetcher.publish(URL, [make_descriptor("p2", display_name="Renamed"), make_descriptor("p3")])
    result = manager.sync_once(demo_realm, federation.id)

    assert result.added == ["p3"]
    assert result.updated == ["p2"]
    assert result.removed == ["p1"]
    assert _aliases(manager, demo_realm) == ["p2", "p3"]
    assert manager.federations.require_identity_provider(demo_realm.id, "p2").display_name == "Renamed"
    assert manager.federations.provider_mappers(demo_realm.id, "p1") == []


def test_filters_applied(manager, demo_realm, federation, fetcher, make_descriptor):
    stored = manager.federations.require_federation(demo_realm.id, federation.id)
    stored.entity_id_deny = ["p2"]
    manager.federations.save_federation(stored)
    fetcher.publish(URL, [make_descriptor("p1"), make_descriptor("p2")])

    result = manager.sync_once(demo_realm, federation.id)

    assert result.added == ["p1"]
    assert _aliases(manager, demo_realm) == ["p1"]


def test_fetch_failure_changes_nothing(manager, demo_realm, federation, fetcher, make_descriptor, recorder):
    fetcher.publish(URL, [make_descriptor("p1")])
    manager.sync_once(demo_realm, federation.id)
    last_refresh = manager.federations.require_federation(demo_realm.id, federation.id).last_refresh
    events_before = len(recorder.events)

    fetcher.fail(URL)
    result = manager.sync_once(demo_realm, federation.id)

    assert result.status == STATUS_FETCH_FAILED
    assert "connection refused" in result.error
    assert _aliases(manager, demo_realm) == ["p1"]
    assert manager.federations.require_federation(demo_realm.id, federation.id).last_refresh == last_refresh
    assert len(recorder.events) == events_before


def test_empty_fetch_removes_all_members(manager, demo_realm, federation, fetcher, make_descriptor):
    fetcher.publish(URL, [make_descriptor("p1")])
    manager.sync_once(demo_realm, federation.id)

    fetcher.publish(URL, [])
    result = manager.sync_once(demo_realm, federation.id)

    assert result.removed == ["p1"]
    assert _aliases(manager, demo_realm) == []


def test_shared_provider_survives_one_federation(manager, demo_realm, federation, fetcher, make_descriptor):
    other_url = "https://other.example/feed"
    other = manager.create_federation(demo_realm, IdentityProviderFederation(
        alias="national", realm_id="", url=other_url,
    ))
    fetcher.publish(URL, [make_descriptor("shared")])
    fetcher.publish(other_url, [make_descriptor("shared")])
    manager.sync_once(demo_realm, federation.id)

    result = manager.sync_once(demo_realm, other.id)

    assert result.added == ["shared"]
    shared = manager.federations.require_identity_provider(demo_realm.id, "shared")
    assert shared.federations == {federation.id, other.id}

    fetcher.publish(URL, [])
    manager.sync_once(demo_realm, federation.id)

    shared = manager.federations.require_identity_provider(demo_realm.id, "shared")
    assert shared.federations == {other.id}


def test_manually_created_provider_is_not_taken_over(manager, demo_realm, federation, fetcher, make_descriptor):
    manager.create_identity_provider(demo_realm, IdentityProvider(
        alias="p1", realm_id="", provider_id="saml", config={"custom": "keep"},
    ))
    fetcher.publish(URL, [make_descriptor("p1"), make_descriptor("p2")])

    result = manager.sync_once(demo_realm, federation.id)

    assert result.added == ["p2"]
    assert result.skipped == ["p1"]
    assert result.to_dict()["skipped"] == ["p1"]
    p1 = manager.federations.require_identity_provider(demo_realm.id, "p1")
    assert p1.config == {"custom": "keep"}
    assert p1.federations == set()
    assert manager.federations.provider_mappers(demo_realm.id, "p1") == []

    fetcher.publish(URL, [])
    manager.sync_once(demo_realm, federation.id)

    assert _aliases(manager, demo_realm) == ["p1"]


def test_mapper_failure_recorded_and_sync_continues(manager, demo_realm, federation, fetcher, make_descriptor):
    # saml-only mapper cannot attach to an oidc provider
    fetcher.publish(URL, [make_descriptor("oidc-idp", provider_id="oidc"), make_descriptor("saml-idp")])

    result = manager.sync_once(demo_realm, federation.id)

    assert result.status == STATUS_OK
    assert result.added == ["oidc-idp", "saml-idp"]
    assert [(f.alias, f.mapper) for f in result.mapper_failures] == [("oidc-idp", "affiliation")]
    assert [m.name for m in manager.federations.provider_mappers(demo_realm.id, "oidc-idp")] == ["member"]


def test_apply_failure_keeps_applied_changes(manager, demo_realm, federation, fetcher, make_descriptor):
    fetcher.publish(URL, [make_descriptor("good"), make_descriptor("bad", provider_id="ldap")])

    with pytest.raises(SyncApplyError) as exc:
        manager.sync_once(demo_realm, federation.id)

    assert exc.value.applied == 1
    assert exc.value.federation_id == federation.id
    assert _aliases(manager, demo_realm) == ["good"]
    assert manager.federations.require_federation(demo_realm.id, federation.id).last_refresh is None


def test_sync_sets_last_refresh_and_publishes(store, fetcher, events, recorder, demo_realm, federation, make_descriptor):
    synchronizer = FederationSynchronizer(store, fetcher, events, clock=lambda: 1_700_000_000.5)
    fetcher.publish(URL, [make_descriptor("p1")])

    synchronizer.sync_once(demo_realm, federation.id)

    stored = synchronizer.federations.require_federation(demo_realm.id, federation.id)
    assert stored.last_refresh == 1_700_000_000_500
    assert stored.valid_until is None
    assert recorder.types()[-1] == FEDERATION_SYNCED
    assert IDP_CREATED in recorder.types()


def test_sync_records_earliest_valid_until(manager, demo_realm, federation, fetcher, make_descriptor):
    fetcher.publish(URL, [
        make_descriptor("p1", valid_until=1_800_000_000_000),
        make_descriptor("p2", valid_until=1_750_000_000_000),
        make_descriptor("p3"),
    ])

    manager.sync_once(demo_realm, federation.id)

    stored = manager.federations.require_federation(demo_realm.id, federation.id)
    assert stored.valid_until == 1_750_000_000_000


def test_new_mapper_not_backfilled_by_default(manager, demo_realm, federation, fetcher, make_descriptor):
    fetcher.publish(URL, [make_descriptor("p1")])
    manager.sync_once(demo_realm, federation.id)
    manager.add_federation_mapper(demo_realm, federation.id, FederationMapper(
        name="late", mapper_type="hardcoded-attribute-idp-mapper", federation_id="",
    ))

    manager.sync_once(demo_realm, federation.id)

    names = {m.name for m in manager.federations.provider_mappers(demo_realm.id, "p1")}
    assert "late" not in names


def test_backfill_adds_missing_mappers(store, fetcher, demo_realm, federation, make_descriptor, manager):
    fetcher.publish(URL, [make_descriptor("p1")])
    manager.sync_once(demo_realm, federation.id)
    manager.add_federation_mapper(demo_realm, federation.id, FederationMapper(
        name="late", mapper_type="hardcoded-attribute-idp-mapper", federation_id="",
    ))

    FederationSynchronizer(store, fetcher, backfill_mappers=True).sync_once(demo_realm, federation.id)

    names = {m.name for m in manager.federations.provider_mappers(demo_realm.id, "p1")}
    assert names == {"affiliation", "member", "late"}


def test_unknown_federation(manager, demo_realm):
    with pytest.raises(FederationNotFoundError):
        manager.sync_once(demo_realm, "missing")


def test_sync_result_to_dict(manager, demo_realm, federation, fetcher, make_descriptor):
    fetcher.publish(URL, [make_descriptor("p1")])

    data = manager.sync_once(demo_realm, federation.id).to_dict()

    assert data["federationId"] == federation.id
    assert data["added"] == ["p1"]
    assert data["mapperFailures"] == []


# ─────────────────────────────────────────────────────────────────────────────
# Per-provider metadata refresh
# ─────────────────────────────────────────────────────────────────────────────
def test_refresh_provider_merges_config(manager, demo_realm, fetcher, make_descriptor):
    idp_url = "https://idp.example/metadata"
    manager.federations.create_identity_provider(demo_realm.id, IdentityProvider(
        alias="corp", realm_id="", provider_id="saml",
        config={"metadataDescriptorUrl": idp_url, "nameIDPolicyFormat": "persistent"},
    ))
    fetcher.publish(idp_url, [make_descriptor("corp", config={"singleSignOnServiceUrl": "https://idp.example/sso"})])

    assert manager.synchronizer.refresh_provider(demo_realm, "corp") is True

    config = manager.federations.require_identity_provider(demo_realm.id, "corp").config
    assert config["singleSignOnServiceUrl"] == "https://idp.example/sso"
    assert config["nameIDPolicyFormat"] == "persistent"

    fetcher.fail(idp_url)
    assert manager.synchronizer.refresh_provider(demo_realm, "corp") is False

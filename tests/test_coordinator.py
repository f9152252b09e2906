import asyncio
from datetime import timedelta

import httpx
import pytest

from adapters import ranch_api
from core.domain.errors import (
    ApplicationError,
    ConfirmationAborted,
    MutationInFlight,
    NetworkUnavailable,
    OfflineReadOnly,
    ValidationError,
)
from core.domain.models import RanchProfile
from core.services.coordinator import CattleCoordinator, edit_ranch_profile, validate_new_cattle
from core.services.entity_store import EntityStore
from core.services.fallback import FallbackProvider
from core.services.reconciler import PinReconciler

from conftest import T0, body_of, cow, envelope, fix


NEW_COW = {"earTag": "COW-001", "breed": "Holstein", "age": 3, "weight": 450, "sex": "female"}


def _server_entity(request, entity_id="srv-1"):
    body = body_of(request)
    return envelope({"bovine": {**body, "id": entity_id}}, status=201)


@pytest.fixture
def store():
    return EntityStore()


@pytest.fixture
def view(store, clock):
    reconciler = PinReconciler(store, clock=clock)
    asyncio.run(reconciler.mount())
    return reconciler


@pytest.fixture
def coordinator(make_client, store):
    return CattleCoordinator(make_client(), store)


class TestCreate:
    def test_scenario_a_creates_entity_without_pin(self, backend, coordinator, store, view):
        backend.on("POST", "/cattle", _server_entity)

        created = asyncio.run(coordinator.create(NEW_COW))

        assert created.id == "srv-1"
        assert created.ear_tag == "COW-001"
        assert created.sex == "female"
        assert [e.id for e in store.entities()] == ["srv-1"]
        assert view.pins == []
        sent = body_of(backend.requests[0])
        assert sent["earTag"] == "COW-001"
        assert "id" not in sent

    @pytest.mark.parametrize(
        "patch, field",
        [
            ({"earTag": ""}, "ear_tag"),
            ({"breed": None}, "breed"),
            ({"age": 0}, "age"),
            ({"age": -1}, "age"),
            ({"sex": "unknown"}, "sex"),
            ({"weight": -3}, "weight"),
        ],
    )
    def test_validation_blocks_before_network(self, backend, coordinator, store, patch, field):
        with pytest.raises(ValidationError) as excinfo:
            asyncio.run(coordinator.create({**NEW_COW, **patch}))

        assert field in excinfo.value.fields
        assert backend.requests == []
        assert len(store) == 0

    def test_missing_fields_are_all_reported(self):
        errors = validate_new_cattle({})
        assert set(errors) == {"ear_tag", "breed", "age", "sex"}

    def test_placeholder_is_visible_while_in_flight(self, backend, coordinator, store):
        seen = []

        async def slow(request):
            seen.extend(e.id for e in store.entities())
            return _server_entity(request)

        backend.on("POST", "/cattle", slow)
        asyncio.run(coordinator.create(NEW_COW))

        assert len(seen) == 1
        assert seen[0].startswith("local-")
        assert [e.id for e in store.entities()] == ["srv-1"]

    def test_failed_create_removes_placeholder(self, backend, coordinator, store):
        backend.on("POST", "/cattle", lambda r: httpx.Response(400, json={"message": "Arete duplicado"}))

        with pytest.raises(ApplicationError) as excinfo:
            asyncio.run(coordinator.create(NEW_COW))

        assert excinfo.value.message == "Arete duplicado"
        assert len(store) == 0
        assert coordinator.submitting is False


class TestSerialization:
    def test_second_mutation_while_submitting_is_rejected(self, backend, coordinator, store):
        async def scenario():
            release = asyncio.Event()

            async def slow(request):
                await release.wait()
                return _server_entity(request)

            backend.on("POST", "/cattle", slow)
            first = asyncio.create_task(coordinator.create(NEW_COW))
            await asyncio.sleep(0.01)
            assert coordinator.submitting
            with pytest.raises(MutationInFlight):
                await coordinator.create({**NEW_COW, "earTag": "COW-002"})
            release.set()
            return await first

        created = asyncio.run(scenario())

        assert created.id == "srv-1"
        assert len(backend.requests) == 1
        assert coordinator.submitting is False


class TestUpdateLocation:
    def test_round_trip_pin_follows_last_update(self, backend, coordinator, store, view):
        backend.on("POST", "/cattle", _server_entity)
        backend.on("PUT", "/cattle/srv-1/location", lambda r: envelope({"updated": True}))

        async def scenario():
            await coordinator.create(NEW_COW)
            await coordinator.update_location("srv-1", fix(17.98, -92.93, at=T0))
            await coordinator.update_location("srv-1", fix(17.989, -92.9465, at=T0 + timedelta(minutes=5)))

        asyncio.run(scenario())

        assert [p.id for p in view.pins] == ["pin-srv-1"]
        assert view.pins[0].coordinate == (17.989, -92.9465)

    def test_body_carries_full_location_and_tracking_config(self, backend, coordinator, store):
        store.upsert(cow("c1"))
        backend.on("PUT", "/cattle/c1/location", lambda r: envelope({"updated": True}))

        asyncio.run(coordinator.update_location("c1", fix(17.989, -92.9465, accuracy=5)))

        body = body_of(backend.requests[0])
        assert body["location"]["latitude"] == 17.989
        assert body["location"]["longitude"] == -92.9465
        assert body["location"]["accuracy"] == 5
        assert body["location"]["source"] == "GPS"
        assert "timestamp" in body["location"]
        assert body["trackingConfig"]["isEnabled"] is True
        assert list(body) == ["location", "trackingConfig"]

    def test_optimistic_location_is_applied_before_response(self, backend, coordinator, store):
        store.upsert(cow("c1"))
        seen = []

        def capture(request):
            seen.append(store.get("c1").location.latitude)
            return envelope({"updated": True})

        backend.on("PUT", "/cattle/c1/location", capture)
        asyncio.run(coordinator.update_location("c1", fix(10.0, 20.0)))

        assert seen == [10.0]

    def test_failed_update_restores_previous_location(self, backend, coordinator, store, view):
        store.upsert(cow("c1", location=fix(1.0, 2.0)))
        backend.on("PUT", "/cattle/c1/location", lambda r: httpx.Response(500, json={"message": "fail"}))

        with pytest.raises(ApplicationError):
            asyncio.run(coordinator.update_location("c1", fix(5.0, 6.0)))

        assert store.get("c1").location.latitude == 1.0
        assert view.pins[0].coordinate == (1.0, 2.0)

    def test_server_returned_location_wins(self, backend, coordinator, store):
        store.upsert(cow("c1"))
        backend.on(
            "PUT",
            "/cattle/c1/location",
            lambda r: envelope({"bovine": {"id": "c1", "location": {"latitude": 7.5, "longitude": 8.5}}}),
        )

        asyncio.run(coordinator.update_location("c1", fix(7.0, 8.0)))

        assert store.get("c1").location.latitude == 7.5

    def test_unknown_entity_is_a_validation_error(self, backend, coordinator):
        with pytest.raises(ValidationError):
            asyncio.run(coordinator.update_location("ghost", fix(1, 1)))
        assert backend.requests == []


class TestLocationOrdering:
    def _race(self, backend, make_client, store, ordering):
        store.upsert(cow("c1"))
        older = fix(1.0, 1.0, at=T0)
        newer = fix(2.0, 2.0, at=T0 + timedelta(minutes=1))

        async def scenario():
            gates = {1.0: asyncio.Event(), 2.0: asyncio.Event()}

            async def gated(request):
                lat = body_of(request)["location"]["latitude"]
                await gates[lat].wait()
                return envelope({"updated": True})

            backend.on("PUT", "/cattle/c1/location", gated)
            view_a = CattleCoordinator(make_client(), store, location_ordering=ordering)
            view_b = CattleCoordinator(make_client(), store, location_ordering=ordering)

            slow = asyncio.create_task(view_a.update_location("c1", older))
            await asyncio.sleep(0.01)
            fast = asyncio.create_task(view_b.update_location("c1", newer))
            await asyncio.sleep(0.01)
            gates[2.0].set()
            await fast
            gates[1.0].set()
            await slow

        asyncio.run(scenario())
        return store.get("c1").location

    def test_monotonic_guard_discards_stale_resolution(self, backend, make_client, store):
        final = self._race(backend, make_client, store, "monotonic")
        assert final.latitude == 2.0

    def test_last_resolved_wins_when_configured(self, backend, make_client, store):
        final = self._race(backend, make_client, store, "last_resolved")
        assert final.latitude == 1.0


class TestDelete:
    def test_scenario_c_confirmed_delete_removes_entity_and_pin(self, backend, coordinator, store, view):
        store.upsert(cow("c1", location=fix(17.989, -92.9465)))
        backend.on("DELETE", "/cattle/c1", lambda r: envelope({"deleted": True}))

        asyncio.run(coordinator.delete("c1", confirm=lambda entity: True))

        assert store.get("c1") is None
        assert view.pins == []

    def test_scenario_c_failed_delete_leaves_state_untouched(self, backend, coordinator, store, view):
        store.upsert(cow("c1", location=fix(17.989, -92.9465)))
        backend.on("DELETE", "/cattle/c1", lambda r: httpx.Response(500, json={"message": "no"}))

        with pytest.raises(ApplicationError):
            asyncio.run(coordinator.delete("c1", confirm=lambda entity: True))

        assert store.get("c1") is not None
        assert [p.id for p in view.pins] == ["pin-c1"]

    def test_delete_is_not_optimistic(self, backend, coordinator, store):
        store.upsert(cow("c1"))
        seen = []

        def capture(request):
            seen.append("c1" in store)
            return envelope({"deleted": True})

        backend.on("DELETE", "/cattle/c1", capture)
        asyncio.run(coordinator.delete("c1", confirm=lambda entity: True))

        assert seen == [True]

    def test_declined_confirmation_aborts_without_request(self, backend, coordinator, store):
        store.upsert(cow("c1"))

        with pytest.raises(ConfirmationAborted):
            asyncio.run(coordinator.delete("c1", confirm=lambda entity: False))

        assert backend.requests == []
        assert "c1" in store

    def test_missing_confirmation_aborts(self, backend, coordinator, store):
        store.upsert(cow("c1"))

        with pytest.raises(ConfirmationAborted):
            asyncio.run(coordinator.delete("c1"))
        assert backend.requests == []

    def test_async_confirmation_is_awaited(self, backend, make_client, store):
        async def ask(entity):
            return True

        store.upsert(cow("c1"))
        backend.on("DELETE", "/cattle/c1", lambda r: envelope({"deleted": True}))
        coordinator = CattleCoordinator(make_client(), store, confirm=ask)

        asyncio.run(coordinator.delete("c1"))
        assert "c1" not in store

    def test_selected_pin_cleared_after_delete(self, backend, make_client, store, clock):
        coordinator = CattleCoordinator(make_client(), store)
        reconciler = PinReconciler(store, selection=coordinator, clock=clock)
        asyncio.run(reconciler.mount())
        store.upsert(cow("c1", location=fix(1, 1)))
        reconciler.surface.click("pin-c1")
        assert coordinator.selected_pin_id == "pin-c1"

        backend.on("DELETE", "/cattle/c1", lambda r: envelope({"deleted": True}))
        asyncio.run(coordinator.delete("c1", confirm=lambda entity: True))

        assert coordinator.selected_pin_id is None


class TestUpdateFields:
    def test_fields_update_is_optimistic_and_rolls_back(self, backend, coordinator, store):
        store.upsert(cow("c1"))
        backend.on("PUT", "/cattle/c1", lambda r: httpx.Response(500, json={"message": "fail"}))

        with pytest.raises(ApplicationError):
            asyncio.run(coordinator.update_fields("c1", {"weight": 480}))

        assert store.get("c1").weight == 450

    def test_fields_update_applies_server_entity(self, backend, coordinator, store):
        store.upsert(cow("c1", location=fix(1, 1)))
        backend.on(
            "PUT",
            "/cattle/c1",
            lambda r: envelope({"bovine": {**body_of(r), "id": "c1", "healthStatus": "sick"}}),
        )

        updated = asyncio.run(coordinator.update_fields("c1", {"healthStatus": "sick", "weight": 470}))

        assert updated.health_status == "sick"
        assert store.get("c1").weight == 470
        assert store.get("c1").location is not None
        assert "location" not in body_of(backend.requests[0])


class TestLoad:
    def test_load_replaces_entities_and_keeps_placeholders(self, backend, make_client, store):
        from core.domain.models import TrackedEntity

        placeholder = TrackedEntity(id="local-abc", ear_tag="NEW", breed="Gyr", age=1, sex="male")
        store.upsert(cow("stale"))
        store.upsert(placeholder)
        backend.on("GET", "/cattle", lambda r: envelope({"bovines": [{"id": "b1", "earTag": "A-1", "breed": "Gyr"}]}))
        coordinator = CattleCoordinator(make_client(), store, fallback=FallbackProvider(make_client()))

        result = asyncio.run(coordinator.load())

        assert result.source == "live"
        assert [e.id for e in store.entities()] == ["b1", "local-abc"]

    def test_load_falls_back_when_backend_fails(self, backend, make_client, store):
        backend.on("GET", "/cattle", lambda r: httpx.Response(503))
        coordinator = CattleCoordinator(make_client(), store, fallback=FallbackProvider(make_client()))

        result = asyncio.run(coordinator.load())

        assert result.source == "fallback"
        assert coordinator.last_source == "fallback"
        assert len(store) == 5


class TestSingleViewOrdering:
    def test_monotonic_rejects_older_reading_before_sending(self, backend, coordinator, store):
        store.upsert(cow("c1", location=fix(2.0, 2.0, at=T0 + timedelta(minutes=10))))
        backend.on("PUT", "/cattle/c1/location", lambda r: envelope({"updated": True}))

        with pytest.raises(ValidationError) as excinfo:
            asyncio.run(coordinator.update_location("c1", fix(1.0, 1.0, at=T0)))

        assert "location" in excinfo.value.fields
        assert backend.calls("PUT", "/cattle/c1/location") == []
        assert store.get("c1").location.latitude == 2.0
        assert coordinator.submitting is False

    def test_monotonic_accepts_same_timestamp(self, backend, coordinator, store):
        store.upsert(cow("c1", location=fix(2.0, 2.0, at=T0)))
        backend.on("PUT", "/cattle/c1/location", lambda r: envelope({"updated": True}))

        asyncio.run(coordinator.update_location("c1", fix(3.0, 3.0, at=T0)))

        assert store.get("c1").location.latitude == 3.0

    def test_last_resolved_applies_older_reading(self, backend, make_client, store):
        store.upsert(cow("c1", location=fix(2.0, 2.0, at=T0 + timedelta(minutes=10))))
        backend.on("PUT", "/cattle/c1/location", lambda r: envelope({"updated": True}))
        coordinator = CattleCoordinator(make_client(), store, location_ordering="last_resolved")

        asyncio.run(coordinator.update_location("c1", fix(1.0, 1.0, at=T0)))

        assert store.get("c1").location.latitude == 1.0
        assert len(backend.calls("PUT", "/cattle/c1/location")) == 1


class TestOfflineDemoData:
    @pytest.fixture
    def offline(self, backend, make_client, store):
        backend.on("GET", "/cattle", lambda r: httpx.Response(503))
        coordinator = CattleCoordinator(make_client(), store, fallback=FallbackProvider(make_client()))
        result = asyncio.run(coordinator.load())
        assert result.source == "fallback"
        return coordinator

    def _demo_id(self, store):
        return store.entities()[0].id

    def test_location_update_on_demo_entity_is_refused(self, backend, offline, store):
        demo_id = self._demo_id(store)
        before = store.get(demo_id).location

        with pytest.raises(OfflineReadOnly):
            asyncio.run(offline.update_location(demo_id, fix(1.0, 1.0, at=T0 + timedelta(days=365))))

        assert [r.method for r in backend.requests] == ["GET"]
        assert store.get(demo_id).location == before

    @pytest.mark.parametrize("action", ["create", "update_fields", "delete"])
    def test_other_mutations_are_refused(self, backend, offline, store, action):
        demo_id = self._demo_id(store)
        calls = {
            "create": lambda: offline.create(NEW_COW),
            "update_fields": lambda: offline.update_fields(demo_id, {"weight": 500}),
            "delete": lambda: offline.delete(demo_id, confirm=lambda entity: True),
        }

        with pytest.raises(OfflineReadOnly):
            asyncio.run(calls[action]())

        assert [r.method for r in backend.requests] == ["GET"]
        assert len(store) == 5

    def test_mutations_resume_after_live_reload(self, backend, offline, store):
        backend.on("GET", "/cattle", lambda r: envelope({"bovines": [{"id": "b1", "earTag": "A-1", "breed": "Gyr"}]}))
        backend.on("PUT", "/cattle/b1/location", lambda r: envelope({"updated": True}))

        result = asyncio.run(offline.load())
        asyncio.run(offline.update_location("b1", fix(17.98, -92.93)))

        assert result.source == "live"
        assert store.get("b1").location.latitude == 17.98


PROFILE = {"id": "r1", "name": "La Esperanza", "owner": "Ana", "areaHectares": 62.0, "phone": "993-000"}


class TestRanchProfile:
    def test_put_sends_full_profile_in_camel_case(self, backend, make_client):
        backend.on("PUT", "/ranch/profile", lambda r: envelope({"updated": True}))
        profile = RanchProfile(id="r1", name="La Esperanza", area_hectares=62.0)

        outcome = asyncio.run(ranch_api.update_ranch_profile(make_client(), profile))

        assert outcome.ok
        body = body_of(backend.calls("PUT", "/ranch/profile")[0])
        assert body == {"id": "r1", "name": "La Esperanza", "areaHectares": 62.0}

    def test_edit_merges_changes_into_live_profile(self, backend, make_client):
        backend.on("GET", "/ranch/profile", lambda r: envelope({"ranch": PROFILE}))
        backend.on("PUT", "/ranch/profile", lambda r: envelope({"ranch": body_of(r)}))

        updated = asyncio.run(edit_ranch_profile(make_client(), {"owner": "Luis", "id": "other"}))

        body = body_of(backend.calls("PUT", "/ranch/profile")[0])
        assert body["owner"] == "Luis"
        assert body["id"] == "r1"
        assert body["phone"] == "993-000"
        assert body["areaHectares"] == 62.0
        assert updated.owner == "Luis"

    def test_edit_keeps_local_profile_on_bare_ack(self, backend, make_client):
        backend.on("GET", "/ranch/profile", lambda r: envelope({"ranch": PROFILE}))
        backend.on("PUT", "/ranch/profile", lambda r: envelope({"updated": True}))

        updated = asyncio.run(edit_ranch_profile(make_client(), {"name": "El Roble"}))

        assert updated.id == "r1"
        assert updated.name == "El Roble"

    def test_invalid_change_is_rejected_before_put(self, backend, make_client):
        backend.on("GET", "/ranch/profile", lambda r: envelope({"ranch": PROFILE}))

        with pytest.raises(ValidationError) as excinfo:
            asyncio.run(edit_ranch_profile(make_client(), {"area_hectares": -1}))

        assert set(excinfo.value.fields) & {"area_hectares", "areaHectares"}
        assert backend.calls("PUT", "/ranch/profile") == []

    def test_edit_never_writes_demo_profile_when_offline(self, backend, make_client):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend.on("GET", "/ranch/profile", refuse)

        with pytest.raises(NetworkUnavailable):
            asyncio.run(edit_ranch_profile(make_client(max_retries=0), {"name": "X"}))

        assert backend.calls("PUT", "/ranch/profile") == []

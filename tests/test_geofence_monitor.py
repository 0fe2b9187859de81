import asyncio

import pytest

from fieldsales.models.domain import Coordinate, GeofenceSpec
from fieldsales.services.geofence import (
    GeofenceEventType,
    GeofenceMonitor,
    LocationError,
    LocationErrorCode,
    QueueLocationSource,
)
from fieldsales.services.geospatial import distance_meters

from conftest import OUTLET_CENTER, geofence, north_of

LAT, LNG = OUTLET_CENTER
ENTERED = GeofenceEventType.ENTERED
EXITED = GeofenceEventType.EXITED


def test_radius_must_be_positive():
    with pytest.raises(ValueError):
        GeofenceSpec(outlet_id="O1", center_lat=LAT, center_lng=LNG, radius_meters=0)


def test_enter_then_exit_emits_one_event_each(clock):
    monitor = GeofenceMonitor("U1", [geofence("O1")], clock=clock)

    entered = monitor.evaluate(north_of(LAT, LNG, 100))
    assert [(e.type, e.outlet_id) for e in entered] == [(ENTERED, "O1")]
    assert entered[0].user_id == "U1"
    assert entered[0].occurred_at == clock.now
    assert entered[0].distance_meters == pytest.approx(100)
    assert monitor.active_outlets() == frozenset({"O1"})

    exited = monitor.evaluate(north_of(LAT, LNG, 200))
    assert [(e.type, e.outlet_id) for e in exited] == [(EXITED, "O1")]
    assert monitor.active_outlets() == frozenset()


def test_sample_exactly_on_radius_counts_as_inside():
    sample = north_of(LAT, LNG, 150)
    radius = distance_meters(sample, Coordinate(LAT, LNG))
    monitor = GeofenceMonitor("U1", [geofence("O1", radius=radius)])

    events = monitor.evaluate(sample)

    assert [e.type for e in events] == [ENTERED]


def test_repeating_a_sample_emits_nothing():
    monitor = GeofenceMonitor("U1", [geofence("O1")])
    sample = north_of(LAT, LNG, 50)

    assert monitor.evaluate(sample)
    assert monitor.evaluate(sample) == []
    assert monitor.evaluate(sample) == []


def test_starts_outside_so_first_outside_sample_is_silent():
    monitor = GeofenceMonitor("U1", [geofence("O1")])
    assert monitor.evaluate(north_of(LAT, LNG, 500)) == []


def test_events_alternate_per_outlet_along_a_path():
    monitor = GeofenceMonitor("U1", [geofence("O1")])
    path = [300, 140, 120, 160, 400, 10, 10, 151, 149, 0, 1000]

    types = [event.type for meters in path for event in monitor.evaluate(north_of(LAT, LNG, meters))]

    assert types == [ENTERED, EXITED, ENTERED, EXITED, ENTERED, EXITED]
    for previous, current in zip(types, types[1:]):
        assert previous != current


def test_overlapping_geofences_are_independent():
    near = geofence("O1")
    farther = geofence("O2", lat=LAT + 200 / 111_194.93)
    monitor = GeofenceMonitor("U1", [near, farther])

    events = monitor.evaluate(north_of(LAT, LNG, 100))
    assert sorted((e.type, e.outlet_id) for e in events) == [(ENTERED, "O1"), (ENTERED, "O2")]

    events = monitor.evaluate(north_of(LAT, LNG, 300))
    assert [(e.type, e.outlet_id) for e in events] == [(EXITED, "O1")]
    assert monitor.active_outlets() == frozenset({"O2"})


def test_location_error_freezes_membership():
    monitor = GeofenceMonitor("U1", [geofence("O1")])
    monitor.evaluate(north_of(LAT, LNG, 20))

    monitor.report_location_error(LocationError(LocationErrorCode.TIMEOUT, "no fix"))

    assert not monitor.location_available
    assert monitor.active_outlets() == frozenset({"O1"})

    assert monitor.evaluate(north_of(LAT, LNG, 30)) == []
    assert monitor.location_available


def test_injected_membership_is_used_and_shared():
    membership = {"O1": True}
    monitor = GeofenceMonitor("U1", [geofence("O1")], membership=membership)

    events = monitor.evaluate(north_of(LAT, LNG, 500))

    assert [e.type for e in events] == [EXITED]
    assert membership == {"O1": False}


def test_separate_monitors_do_not_share_state():
    first = GeofenceMonitor("U1", [geofence("O1")])
    second = GeofenceMonitor("U2", [geofence("O1")])

    first.evaluate(north_of(LAT, LNG, 10))

    assert second.active_outlets() == frozenset()


def test_refresh_keeps_membership_of_remaining_outlets():
    monitor = GeofenceMonitor("U1", [geofence("O1"), geofence("O2")])
    monitor.evaluate(north_of(LAT, LNG, 10))

    monitor.refresh_geofences([geofence("O1"), geofence("O3", lat=LAT + 1)])

    assert monitor.active_outlets() == frozenset({"O1"})
    assert monitor.evaluate(north_of(LAT, LNG, 10)) == []


@pytest.mark.asyncio
async def test_watch_consumes_pushed_samples_until_cancelled():
    source = QueueLocationSource()
    monitor = GeofenceMonitor("U1", [geofence("O1")])

    source.push(north_of(LAT, LNG, 50))
    source.fail(LocationError(LocationErrorCode.POSITION_UNAVAILABLE))
    source.push(north_of(LAT, LNG, 60))
    source.push(north_of(LAT, LNG, 400))
    source.cancel()
    source.push(north_of(LAT, LNG, 10))

    events = [event async for event in monitor.watch(source.subscribe())]

    assert [e.type for e in events] == [ENTERED, EXITED]
    assert source.cancelled


@pytest.mark.asyncio
async def test_drain_returns_once_pushed_samples_are_handled():
    source = QueueLocationSource()
    monitor = GeofenceMonitor("U1", [geofence("O1")])
    seen = []

    async def consume():
        async for event in monitor.watch(source.subscribe()):
            seen.append(event)

    task = asyncio.create_task(consume())
    source.push(north_of(LAT, LNG, 10))
    await source.drain()

    assert [e.type for e in seen] == [ENTERED]
    assert monitor.active_outlets() == frozenset({"O1"})

    source.cancel()
    await task

"""Tests for message building and the notification dispatcher."""

import pytest

from app.errors import ConfigurationError, TransportError
from app.schemas.location import validate_location
from app.services.dispatcher import NotificationDispatcher, build_message, map_link
from conftest import FakeTransport


def _report(**overrides):
    body = {"to": "a@b.com", "deviceId": "device-0001", "lat": 10.5, "lon": -20.25}
    body.update(overrides)
    return validate_location(body)


def test_map_link_passes_coordinates_through_unrounded():
    assert map_link(10.5, -20.25) == "https://maps.google.com/?q=10.5,-20.25"
    assert map_link(0.1 + 0.2, -122.4194155) == "https://maps.google.com/?q=0.30000000000000004,-122.4194155"


def test_map_link_provider():
    assert map_link(1.25, 2.5, "openstreetmap.org") == "https://maps.openstreetmap.org/?q=1.25,2.5"


def test_build_message_derives_map_url_when_omitted():
    subject, body = build_message(_report(lat=-33.868820, lon="151.209296"))
    assert subject == "Location: device-0001"
    assert "Lat: -33.86882" in body
    assert "Lon: 151.209296" in body
    assert 'href="https://maps.google.com/?q=-33.86882,151.209296"' in body


def test_build_message_prefers_supplied_map_url():
    _, body = build_message(_report(mapUrl="https://osm.org/?mlat=10.5&mlon=-20.25"))
    assert 'href="https://osm.org/?mlat=10.5&amp;mlon=-20.25"' in body
    assert "maps.google.com" not in body


def test_build_message_escapes_device_id():
    _, body = build_message(_report(deviceId="<script>x</script>"))
    assert "<script>" not in body
    assert "&lt;script&gt;" in body


@pytest.mark.asyncio
async def test_dispatch_calls_transport_once():
    transport = FakeTransport()
    receipt = await NotificationDispatcher(transport).dispatch(_report())

    assert receipt.message_id == "msg-1"
    assert len(transport.calls) == 1
    recipient, subject, body = transport.calls[0]
    assert recipient == "a@b.com"
    assert subject == "Location: device-0001"
    assert "https://maps.google.com/?q=10.5,-20.25" in body


@pytest.mark.asyncio
async def test_dispatch_without_transport_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        await NotificationDispatcher(None).dispatch(_report())


@pytest.mark.asyncio
async def test_transport_error_propagates_without_retry():
    transport = FakeTransport(error=TransportError("503: upstream down"))
    with pytest.raises(TransportError) as exc:
        await NotificationDispatcher(transport).dispatch(_report())
    assert exc.value.detail == "503: upstream down"
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_unexpected_transport_exception_becomes_transport_error():
    transport = FakeTransport(error=RuntimeError("boom"))
    with pytest.raises(TransportError) as exc:
        await NotificationDispatcher(transport).dispatch(_report())
    assert exc.value.detail == "RuntimeError: boom"
    assert len(transport.calls) == 1

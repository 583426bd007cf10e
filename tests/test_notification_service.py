# tests/test_notification_service.py
"""Push dispatcher — never raises, reports success as a bool."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from app.services import notification_service


def mock_client(response=None, error=None):
    client = MagicMock()
    client.post = AsyncMock(return_value=response, side_effect=error)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def make_response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {"data": {"status": "ok"}}
    return resp


class TestBuildMessage:
    def test_known_kind(self):
        title, body = notification_service.build_message("CANCELLED", "MG Road Parking")
        assert title == "Booking Cancelled"
        assert "MG Road Parking" in body

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            notification_service.build_message("EXPIRED", "x")


class TestNotify:
    @pytest.mark.asyncio
    async def test_sends_expo_message(self):
        client = mock_client(make_response())
        with patch("app.services.notification_service.httpx.AsyncClient", return_value=client):
            sent = await notification_service.notify("ExponentPushToken[abc]", "Hi", "Body", {"bookingId": "B1"})

        assert sent
        message = client.post.call_args.kwargs["json"]
        assert message["to"] == "ExponentPushToken[abc]"
        assert message["data"] == {"bookingId": "B1"}

    @pytest.mark.asyncio
    async def test_missing_token_skips_request(self):
        with patch("app.services.notification_service.httpx.AsyncClient") as mock_cls:
            assert not await notification_service.notify(None, "Hi", "Body")
        mock_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self):
        client = mock_client(error=httpx.ConnectError("refused"))
        with patch("app.services.notification_service.httpx.AsyncClient", return_value=client):
            assert not await notification_service.notify("ExponentPushToken[abc]", "Hi", "Body")

    @pytest.mark.asyncio
    async def test_expo_error_payload(self):
        client = mock_client(make_response(payload={"errors": [{"code": "PUSH_TOO_MANY"}]}))
        with patch("app.services.notification_service.httpx.AsyncClient", return_value=client):
            assert not await notification_service.notify("ExponentPushToken[abc]", "Hi", "Body")

    @pytest.mark.asyncio
    async def test_non_object_body_does_not_raise(self):
        for body in ([{"status": "ok"}], "ok"):
            client = mock_client(make_response(payload=body))
            with patch("app.services.notification_service.httpx.AsyncClient", return_value=client):
                assert await notification_service.notify("ExponentPushToken[abc]", "Hi", "Body")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = mock_client(make_response(status_code=500))
        with patch("app.services.notification_service.httpx.AsyncClient", return_value=client):
            assert not await notification_service.notify("ExponentPushToken[abc]", "Hi", "Body")

    @pytest.mark.asyncio
    async def test_notify_booking_tags_type(self):
        with patch("app.services.notification_service.notify", new_callable=AsyncMock, return_value=True) as mock_notify:
            await notification_service.notify_booking("UPCOMING", "tok", "Test Parking", "BOOK1")
        title, _, data = mock_notify.call_args.args[1:]
        assert title == "Upcoming Booking"
        assert data == {"bookingId": "BOOK1", "type": "upcoming"}

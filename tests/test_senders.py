"""Tests for channel senders and the sender registry."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from notifyhub.errors import ConfigurationError, TransientProviderError
from notifyhub.notifications import (
    MaxSender,
    TelegramSender,
    TelegramSession,
    TelegramUserSender,
    build_sender,
)

from .conftest import make_setting


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestTelegramSender:
    @pytest.mark.asyncio
    async def test_send_returns_message_and_peer(self):
        def handler(request):
            assert request.url.path.endswith("/sendMessage")
            assert json.loads(request.content) == {"chat_id": "555", "text": "Привет"}
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 77}})

        sender = TelegramSender("123:abc")
        sender._client = _mock_client(handler)

        result = await sender.send({"chat_id": "555"}, "Привет")

        assert result.success is True
        assert result.external_message_id == "77"
        assert result.external_peer_id == "555"
        await sender.close()

    @pytest.mark.asyncio
    async def test_api_error_description(self):
        sender = TelegramSender("123:abc")
        sender._client = _mock_client(
            lambda request: httpx.Response(200, json={"ok": False, "description": "Bad Request: chat not found"})
        )

        result = await sender.send({"chat_id": "555"}, "text")

        assert result.success is False
        assert result.error == "Bad Request: chat not found"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        sender = TelegramSender("123:abc")
        sender._client = _mock_client(handler)

        result = await sender.send({"chat_id": "555"}, "text")

        assert result.success is False
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_missing_chat_id(self):
        result = await TelegramSender("123:abc").send({"phone": "+7900"}, "text")
        assert result.success is False


class TestMaxSender:
    @pytest.mark.asyncio
    async def test_send(self):
        def handler(request):
            assert request.url.host == "max.test"
            assert request.url.path == "/messages"
            assert request.url.params["chat_id"] == "9001"
            assert request.headers["Authorization"] == "max-key"
            return httpx.Response(200, json={"message": {"body": {"mid": "mid.abc"}}})

        sender = MaxSender("max-key", api_base="https://max.test/")
        sender._client = _mock_client(handler)

        result = await sender.send({"max_chat_id": "9001"}, "hello")

        assert result.success is True
        assert result.external_message_id == "mid.abc"
        assert result.external_peer_id == "9001"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        sender = MaxSender("max-key")
        sender._client = _mock_client(lambda request: httpx.Response(401, text="unauthorized"))

        result = await sender.send({"max_chat_id": "9001"}, "hello")

        assert result.success is False
        assert result.error.startswith("HTTP 401")

    def test_default_pacing(self):
        assert MaxSender("k").send_delay == 2.0


def _make_session(message_id="10", peer_id="20", error=None):
    session = MagicMock()
    session.connect = AsyncMock()
    session.disconnect = AsyncMock()
    session.send_message = AsyncMock(return_value=(message_id, peer_id), side_effect=error)
    return session


class TestTelegramUserSender:
    @pytest.mark.asyncio
    async def test_session_is_opened_once(self):
        session = _make_session()
        factory = MagicMock(return_value=session)
        sender = TelegramUserSender("1", "hash", "sess", session_factory=factory)

        first = await sender.send({"phone": "+79001234567", "name": "Иван"}, "a")
        await sender.send({"phone": "+79001234568"}, "b")

        assert first.success is True
        assert first.external_message_id == "10"
        assert first.external_peer_id == "20"
        factory.assert_called_once()
        session.connect.assert_awaited_once()
        session.send_message.assert_any_await("+79001234567", "a", "Иван")

        await sender.close()
        session.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_provider_failure(self):
        session = _make_session(error=TransientProviderError("Phone +7900 is not registered in Telegram"))
        sender = TelegramUserSender("1", "hash", "sess", session_factory=MagicMock(return_value=session))

        result = await sender.send({"phone": "+7900"}, "a")

        assert result.success is False
        assert "not registered" in result.error

    @pytest.mark.asyncio
    async def test_expired_session(self):
        session = _make_session()
        session.connect = AsyncMock(side_effect=ConfigurationError("telegram", "Telegram session expired"))
        sender = TelegramUserSender("1", "hash", "sess", session_factory=MagicMock(return_value=session))

        result = await sender.send({"phone": "+7900"}, "a")

        assert result.success is False
        assert result.error == "Telegram session expired"

    @pytest.mark.asyncio
    async def test_requires_phone(self):
        factory = MagicMock()
        sender = TelegramUserSender("1", "hash", "sess", session_factory=factory)

        result = await sender.send({"chat_id": "555"}, "a")

        assert result.success is False
        assert result.attempted is False
        factory.assert_not_called()


class TestTelegramSession:
    @pytest.mark.asyncio
    async def test_unauthorized_session_is_a_configuration_error(self):
        with patch("notifyhub.notifications.telegram_session.StringSession"), \
                patch("notifyhub.notifications.telegram_session.TelegramClient") as client_cls:
            client = client_cls.return_value
            client.connect = AsyncMock()
            client.disconnect = AsyncMock()
            client.is_user_authorized = AsyncMock(return_value=False)

            session = TelegramSession("12345", "hash", "sess")
            with pytest.raises(ConfigurationError):
                await session.connect()
            client.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_session_on_same_credentials_waits(self):
        """Sessions sharing a session string connect one after another."""
        with patch("notifyhub.notifications.telegram_session.StringSession"), \
                patch("notifyhub.notifications.telegram_session.TelegramClient") as client_cls:
            client = client_cls.return_value
            client.connect = AsyncMock()
            client.disconnect = AsyncMock()
            client.is_connected = MagicMock(return_value=True)
            client.is_user_authorized = AsyncMock(return_value=True)

            first = TelegramSession("12345", "hash", "shared-sess")
            second = TelegramSession("12345", "hash", "shared-sess")
            other = TelegramSession("12345", "hash", "other-sess")

            await first.connect()
            waiting = asyncio.create_task(second.connect())
            await asyncio.sleep(0.01)
            assert not waiting.done()

            await asyncio.wait_for(other.connect(), timeout=1)
            await other.disconnect()

            await first.disconnect()
            await asyncio.wait_for(waiting, timeout=1)
            await second.disconnect()

    @pytest.mark.asyncio
    async def test_read_watermark(self):
        with patch("notifyhub.notifications.telegram_session.StringSession"), \
                patch("notifyhub.notifications.telegram_session.TelegramClient") as client_cls:
            client = AsyncMock()
            client.return_value = MagicMock(dialogs=[MagicMock(read_outbox_max_id=105)])
            client_cls.return_value = client

            session = TelegramSession("12345", "hash", "sess")
            assert await session.get_read_watermark(MagicMock()) == 105

            client.return_value = MagicMock(dialogs=[])
            assert await session.get_read_watermark(MagicMock()) == 0


class TestBuildSender:
    def test_telegram_bot(self):
        sender = build_sender(make_setting("telegram", {"bot_token": "123:abc"}))
        assert isinstance(sender, TelegramSender)
        assert sender.send_delay == 18.0

    def test_telegram_user_session(self):
        sender = build_sender(make_setting(
            "telegram", {"connection_type": "user_api", "session_string": "s", "api_id": "1", "api_hash": "h"}
        ))
        assert isinstance(sender, TelegramUserSender)

    def test_max(self):
        assert isinstance(build_sender(make_setting("max", {"api_key": "k"})), MaxSender)

    @pytest.mark.parametrize("channel", ["whatsapp", "whatsapp_web", "max_web", "sms"])
    def test_channels_without_automatic_sender(self, channel):
        assert build_sender(make_setting(channel, {})) is None

"""Tests for the PostgREST store client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from aguia_dashboard.clients.query import eq, is_null
from aguia_dashboard.clients.supabase import (
    AuthenticationError,
    RateLimitError,
    SupabaseClient,
    SupabaseError,
    UniqueViolationError,
)


@pytest.fixture
def client():
    """Create a SupabaseClient instance."""
    return SupabaseClient(
        base_url="http://localhost:54321",
        api_key="service-key",
        max_retries=2,
    )


def make_response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.content = b"x" if payload is not None else b""
    response.json.return_value = payload
    response.headers = headers or {}
    response.text = ""
    return response


class TestSupabaseClientInit:
    """Tests for SupabaseClient initialization."""

    def test_init_with_explicit_params(self):
        client = SupabaseClient(base_url="http://custom:9000/", api_key="abc", timeout=5)

        assert client.base_url == "http://custom:9000"
        assert client._api_key == "abc"
        assert client._timeout == 5

    def test_init_falls_back_to_settings(self):
        client = SupabaseClient()

        assert client.base_url == "http://localhost:54321"
        assert client._api_key == "test-service-key"
        assert client._max_retries == 3

    def test_headers_carry_key(self, client):
        headers = client._get_headers(prefer="return=representation")

        assert headers["apikey"] == "service-key"
        assert headers["Authorization"] == "Bearer service-key"
        assert headers["Prefer"] == "return=representation"


class TestTableOperations:
    """Tests for select/insert/update."""

    @pytest.mark.asyncio
    async def test_select_renders_filters(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(payload=[{"id": "1"}])

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            rows = await client.select(
                "transacoes",
                filters=[eq("valor", 500), is_null("deleted_at")],
                order=["data.asc"],
                limit=1,
            )

        assert rows == [{"id": "1"}]
        kwargs = mock_httpx_client.request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "/rest/v1/transacoes"
        assert kwargs["params"] == [
            ("select", "*"),
            ("valor", "eq.500"),
            ("deleted_at", "is.null"),
            ("order", "data.asc"),
            ("limit", "1"),
        ]

    @pytest.mark.asyncio
    async def test_insert_requests_representation(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(
            status_code=201, payload=[{"id": "new"}]
        )

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            rows = await client.insert("transacoes", {"valor": 10.0})

        assert rows == [{"id": "new"}]
        kwargs = mock_httpx_client.request.call_args.kwargs
        assert kwargs["json"] == [{"valor": 10.0}]
        assert kwargs["headers"]["Prefer"] == "return=representation"

    @pytest.mark.asyncio
    async def test_upsert_merges_duplicates(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(payload=[{"id": "p1"}])

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            await client.insert(
                "diarista_ponto",
                {"diarista_id": "d1", "data": "2024-06-10"},
                on_conflict="diarista_id,data",
            )

        kwargs = mock_httpx_client.request.call_args.kwargs
        assert kwargs["params"] == [("on_conflict", "diarista_id,data")]
        assert kwargs["headers"]["Prefer"].startswith("resolution=merge-duplicates")

    @pytest.mark.asyncio
    async def test_update_requires_filters(self, client):
        with pytest.raises(ValueError):
            await client.update("transacoes", {"valor": 1}, [])

    @pytest.mark.asyncio
    async def test_update_patches_matching_rows(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(payload=[{"id": "t1"}])

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            rows = await client.update("transacoes", {"deleted_at": "now"}, [eq("id", "t1")])

        assert rows == [{"id": "t1"}]
        kwargs = mock_httpx_client.request.call_args.kwargs
        assert kwargs["method"] == "PATCH"
        assert kwargs["params"] == [("id", "eq.t1")]


class TestErrorHandling:
    """Tests for error decoding and retries."""

    @pytest.mark.asyncio
    async def test_unauthorized_raises_authentication_error(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(status_code=401)

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            with pytest.raises(AuthenticationError) as exc_info:
                await client.select("transacoes")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_rate_limit(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(
            status_code=429, headers={"Retry-After": "5"}
        )

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            with pytest.raises(RateLimitError) as exc_info:
                await client.select("transacoes")

        assert exc_info.value.details == {"retry_after": 5}

    @pytest.mark.asyncio
    async def test_unique_violation_is_recognized(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(
            status_code=409,
            payload={"code": "23505", "message": "duplicate key value"},
        )

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            with pytest.raises(UniqueViolationError) as exc_info:
                await client.insert("extratos_importados", {"hash_unico": "abc"})

        assert "duplicate key value" in exc_info.value.message
        assert exc_info.value.details["code"] == "23505"

    @pytest.mark.asyncio
    async def test_other_errors_keep_details(self, client, mock_httpx_client):
        mock_httpx_client.request.return_value = make_response(
            status_code=400, payload={"code": "22P02", "message": "invalid input"}
        )

        with patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)):
            with pytest.raises(SupabaseError) as exc_info:
                await client.select("transacoes")

        assert not isinstance(exc_info.value, UniqueViolationError)
        assert exc_info.value.status_code == 400
        assert exc_info.value.details["code"] == "22P02"

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self, client, mock_httpx_client):
        mock_httpx_client.request.side_effect = [
            httpx.ConnectError("connection refused"),
            make_response(payload=[]),
        ]

        with (
            patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)),
            patch("aguia_dashboard.clients.supabase.asyncio.sleep", new=AsyncMock()) as sleep,
        ):
            rows = await client.select("transacoes")

        assert rows == []
        assert mock_httpx_client.request.await_count == 2
        sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_transport_error_after_retries(self, client, mock_httpx_client):
        mock_httpx_client.request.side_effect = httpx.ConnectError("connection refused")

        with (
            patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)),
            patch("aguia_dashboard.clients.supabase.asyncio.sleep", new=AsyncMock()),
        ):
            with pytest.raises(SupabaseError, match="Request failed"):
                await client.select("transacoes")

        assert mock_httpx_client.request.await_count == 3

    @pytest.mark.asyncio
    async def test_insert_not_resent_after_read_timeout(self, client, mock_httpx_client):
        mock_httpx_client.request.side_effect = [
            httpx.ReadTimeout("read timed out"),
            make_response(status_code=201, payload=[{"id": "tx-1"}]),
        ]

        with (
            patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)),
            patch("aguia_dashboard.clients.supabase.asyncio.sleep", new=AsyncMock()) as sleep,
        ):
            with pytest.raises(SupabaseError, match="Request failed"):
                await client.insert("transacoes", {"descricao": "Cimento", "valor": 300.0})

        assert mock_httpx_client.request.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insert_resent_when_connection_failed(self, client, mock_httpx_client):
        mock_httpx_client.request.side_effect = [
            httpx.ConnectTimeout("connect timed out"),
            make_response(status_code=201, payload=[{"id": "tx-1"}]),
        ]

        with (
            patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)),
            patch("aguia_dashboard.clients.supabase.asyncio.sleep", new=AsyncMock()),
        ):
            rows = await client.insert("transacoes", {"descricao": "Cimento", "valor": 300.0})

        assert rows == [{"id": "tx-1"}]
        assert mock_httpx_client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_update_resent_after_read_timeout(self, client, mock_httpx_client):
        mock_httpx_client.request.side_effect = [
            httpx.ReadTimeout("read timed out"),
            make_response(payload=[{"id": "tx-1", "categoria": "Insumos"}]),
        ]

        with (
            patch.object(client, "_get_client", AsyncMock(return_value=mock_httpx_client)),
            patch("aguia_dashboard.clients.supabase.asyncio.sleep", new=AsyncMock()),
        ):
            rows = await client.update("transacoes", {"categoria": "Insumos"}, [eq("id", "tx-1")])

        assert rows == [{"id": "tx-1", "categoria": "Insumos"}]
        assert mock_httpx_client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_close_releases_http_client(self, client, mock_httpx_client):
        client._client = mock_httpx_client

        async with client:
            pass

        mock_httpx_client.aclose.assert_awaited_once()
        assert client._client is None

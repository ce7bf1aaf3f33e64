"""Integration tests for the Solana client: RPC fallback and account decoding."""
from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from marginfi_agent.chains.solana import SolanaClient
from marginfi_agent.config import SolanaConfig
from marginfi_agent.errors import FetchError

CLIENT_MODULE = "marginfi_agent.chains.solana.client"


@pytest.fixture()
def client() -> SolanaClient:
    return SolanaClient(
        SolanaConfig(
            rpc_endpoints=(
                "https://rpc1.example.com",
                "https://rpc2.example.com",
                "https://rpc3.example.com",
            ),
            rpc_timeout=5,
        )
    )


def _mock_session(response_data=None, error: Exception | None = None):
    """Create a mock aiohttp session that returns given data or raises error."""
    mock_response = AsyncMock()
    mock_response.json = AsyncMock(return_value=response_data)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    if error:
        mock_session.post = MagicMock(side_effect=error)
    else:
        mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)

    return mock_session


def _b64(data: bytes) -> list[str]:
    return [base64.b64encode(data).decode(), "base64"]


class TestRpcCall:
    @pytest.mark.asyncio
    async def test_successful_call(self, client: SolanaClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "id": 1, "result": {"data": "ok"}})

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                result = await client.rpc_call("getHealth", [])

        assert result == {"data": "ok"}
        payload = mock_session.post.call_args.kwargs["json"]
        assert payload["method"] == "getHealth"
        assert payload["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_rpc_error_raises(self, client: SolanaClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "error": {"code": -32000, "message": "bad"}}
        )

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(FetchError, match="All RPC endpoints failed"):
                    await client.rpc_call("getHealth", [])

        assert mock_session.post.call_count == 3

    @pytest.mark.asyncio
    async def test_fallback_on_connection_error(self, client: SolanaClient) -> None:
        """When the first endpoint fails, the next one is tried and remembered."""
        call_count = 0

        success_response = AsyncMock()
        success_response.json = AsyncMock(
            return_value={"jsonrpc": "2.0", "result": {"ok": True}}
        )
        success_response.__aenter__ = AsyncMock(return_value=success_response)
        success_response.__aexit__ = AsyncMock(return_value=None)

        def side_effect(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise ConnectionError("first endpoint down")
            return success_response

        mock_session = AsyncMock()
        mock_session.post = MagicMock(side_effect=side_effect)
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=None)

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                result = await client.rpc_call("getHealth", [])

        assert result == {"ok": True}
        assert client.current_rpc_index == 1

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self, client: SolanaClient) -> None:
        mock_session = _mock_session(error=ConnectionError("down"))

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(FetchError, match="All RPC endpoints failed"):
                    await client.rpc_call("getHealth", [])

    @pytest.mark.asyncio
    async def test_no_endpoints(self) -> None:
        with pytest.raises(FetchError, match="No RPC endpoints"):
            await SolanaClient(SolanaConfig()).rpc_call("getHealth", [])


class TestGetAccountInfo:
    @pytest.mark.asyncio
    async def test_decodes_base64(self, client: SolanaClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "result": {"value": {"data": _b64(b"\x01\x02\x03")}}}
        )

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                data = await client.get_account_info("GroupPk")

        assert data == b"\x01\x02\x03"
        params = mock_session.post.call_args.kwargs["json"]["params"]
        assert params[0] == "GroupPk"
        assert params[1]["encoding"] == "base64"

    @pytest.mark.asyncio
    async def test_missing_account(self, client: SolanaClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": {"value": None}})

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                assert await client.get_account_info("GroupPk") is None

    @pytest.mark.asyncio
    async def test_unexpected_encoding(self, client: SolanaClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "result": {"value": {"data": ["abc", "base58"]}}}
        )

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(FetchError, match="Unexpected account data encoding"):
                    await client.get_account_info("GroupPk")


class TestGetProgramAccounts:
    @pytest.mark.asyncio
    async def test_maps_pubkeys_to_data(self, client: SolanaClient) -> None:
        mock_session = _mock_session(
            {
                "jsonrpc": "2.0",
                "result": [
                    {"pubkey": "BankA", "account": {"data": _b64(b"aaa")}},
                    {"pubkey": "BankB", "account": {"data": _b64(b"bbb")}},
                ],
            }
        )
        filters = [{"dataSize": 1864}]

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                accounts = await client.get_program_accounts("Program111", filters)

        assert accounts == {"BankA": b"aaa", "BankB": b"bbb"}
        params = mock_session.post.call_args.kwargs["json"]["params"]
        assert params[0] == "Program111"
        assert params[1]["filters"] == filters

    @pytest.mark.asyncio
    async def test_malformed_result(self, client: SolanaClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": {"not": "a list"}})

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(FetchError, match="Malformed getProgramAccounts"):
                    await client.get_program_accounts("Program111", [])

    @pytest.mark.asyncio
    async def test_malformed_entry(self, client: SolanaClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": [{"pubkey": "BankA"}]})

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(FetchError, match="Malformed program account entry"):
                    await client.get_program_accounts("Program111", [])

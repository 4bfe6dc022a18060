import json
from unittest.mock import patch

import httpx
import pytest

from ingestor.services.chain_client import ChainClient, ConnectionState, is_transient_error
from ingestor.utils.exceptions import ChainUnavailable, JSONRPCError

RPC_URL = "http://node.test"


def make_client(handler, max_retries=2):
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return ChainClient(rpc_url=RPC_URL, max_retries=max_retries, retry_delay=0.01, http_client=http_client)


def rpc_result(request, result):
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.fixture
def no_sleep():
    with patch("ingestor.services.chain_client.time.sleep") as mock_sleep:
        yield mock_sleep


def test_get_head_number():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return rpc_result(request, "0x10")

    client = make_client(handler)
    assert client.get_head_number() == 16
    assert requests[0]["method"] == "eth_blockNumber"
    assert requests[0]["jsonrpc"] == "2.0"


def test_get_block_passes_hex_number_and_full_flag():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return rpc_result(request, {"number": "0x2a", "hash": "0xabc"})

    client = make_client(handler)
    block = client.get_block(42)

    assert block["hash"] == "0xabc"
    assert seen["method"] == "eth_getBlockByNumber"
    assert seen["params"] == ["0x2a", True]


def test_get_block_returns_none_for_unknown_height():
    client = make_client(lambda request: rpc_result(request, None))
    assert client.get_block(10**9) is None


def test_get_receipt_returns_none_when_pending():
    client = make_client(lambda request: rpc_result(request, None))
    assert client.get_receipt("0x" + "ab" * 32) is None


def test_rpc_error_object_is_not_retried(no_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32602, "message": "invalid argument"}},
        )

    client = make_client(handler)
    with pytest.raises(JSONRPCError) as exc_info:
        client.get_head_number()

    assert exc_info.value.code == -32602
    assert exc_info.value.method == "eth_blockNumber"
    assert len(calls) == 1
    no_sleep.assert_not_called()


def test_transient_http_error_is_retried(no_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return rpc_result(request, "0x5")

    client = make_client(handler)
    assert client.get_head_number() == 5
    assert len(calls) == 2
    assert no_sleep.call_count == 1
    assert client.get_connection_status()["state"] == ConnectionState.HEALTHY.value


def test_connection_error_exhausts_retries(no_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler, max_retries=2)
    with pytest.raises(ChainUnavailable):
        client.get_head_number()

    assert len(calls) == 3
    status = client.get_connection_status()
    assert status["state"] == ConnectionState.FAILED.value
    assert status["consecutive_failures"] == 3
    assert status["healthy"] is False


def test_client_error_status_is_not_retried(no_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401)

    client = make_client(handler)
    with pytest.raises(httpx.HTTPStatusError):
        client.get_head_number()
    assert len(calls) == 1


def test_test_connection_false_when_unavailable(no_sleep):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    client = make_client(handler, max_retries=0)
    assert client.test_connection() is False


def test_is_transient_error():
    request = httpx.Request("POST", RPC_URL)
    assert is_transient_error(httpx.ReadTimeout("slow", request=request))
    assert is_transient_error(
        httpx.HTTPStatusError("busy", request=request, response=httpx.Response(429, request=request))
    )
    assert not is_transient_error(
        httpx.HTTPStatusError("bad", request=request, response=httpx.Response(400, request=request))
    )
    assert not is_transient_error(JSONRPCError(-32000, "header not found"))


@patch("ingestor.services.chain_client.settings")
def test_constructor_missing_url(mock_settings):
    mock_settings.CHAIN_RPC_URL = None
    with pytest.raises(ValueError, match="Chain RPC URL is required"):
        ChainClient(rpc_url=None)

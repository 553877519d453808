"""Tests for the JSON wire codec, transport configuration and gRPC servicer."""

import os
from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

import grpc
import pytest

from invoice_engine.catalog import CATALOG_VERSION, FUNCTION_CATALOG
from invoice_engine.codec import SERVICE_NAME, decode_json, encode_json
from invoice_engine.server import (
    BackgroundLoop,
    CommandServicer,
    add_command_servicer_to_server,
    create_server,
    get_transport_config,
)
from invoice_engine.store import InMemoryDatastore

from .fixtures import invoice_args, make_engine


@pytest.fixture
def loop():
    background = BackgroundLoop().start()
    yield background
    background.stop()


@pytest.fixture
def servicer(loop):
    return CommandServicer(make_engine(InMemoryDatastore()), loop, timeout=5)


class TestCodec:
    def test_money_and_dates(self) -> None:
        payload = encode_json({"total": Decimal("110.00"), "due": date(2024, 4, 14)})
        assert payload == b'{"total":"110.00","due":"2024-04-14"}'

    def test_sets_become_lists(self) -> None:
        assert decode_json(encode_json({"tags": {"a"}})) == {"tags": ["a"]}

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(TypeError):
            encode_json({"value": object()})

    def test_empty_body_is_empty_object(self) -> None:
        assert decode_json(b"") == {}


class TestTransportConfig:
    @patch.dict(os.environ, {}, clear=True)
    def test_tcp_default(self) -> None:
        assert get_transport_config() == ("tcp", "[::]:50052")

    @patch.dict(os.environ, {"PORT": "6000"}, clear=True)
    def test_tcp_port(self) -> None:
        assert get_transport_config() == ("tcp", "[::]:6000")

    def test_uds_removes_stale_socket(self, tmp_path) -> None:
        base = tmp_path / "sockets"
        env = {"TRANSPORT_TYPE": "UDS", "UDS_BASE_PATH": str(base), "SERVICE_NAME": "engine"}
        with patch.dict(os.environ, env, clear=True):
            base.mkdir()
            (base / "engine.sock").write_text("stale")

            transport, address = get_transport_config()

        assert transport == "uds"
        assert address == f"unix:{base}/engine.sock"
        assert not (base / "engine.sock").exists()

    def test_uds_creates_base_directory(self, tmp_path) -> None:
        base = tmp_path / "missing"
        with patch.dict(os.environ, {"TRANSPORT_TYPE": "uds", "UDS_BASE_PATH": str(base)}, clear=True):
            get_transport_config()
        assert base.is_dir()


class TestCommandServicer:
    def test_execute_returns_envelope(self, servicer) -> None:
        response = servicer.Execute(
            {"function_name": "create_invoice", "arguments": invoice_args(), "owner_id": "owner-a"},
            Mock(),
        )

        assert response["success"] is True
        assert response["data"]["invoice"]["invoice_number"] == "INV-001"
        assert "error" not in response

    def test_execute_reports_failures_in_envelope(self, servicer) -> None:
        response = servicer.Execute({"function_name": "send_fax", "owner_id": "owner-a"}, Mock())

        assert response["success"] is False
        assert response["error"] == "Unknown function"
        assert "data" not in response

    def test_execute_without_function_name_aborts(self, servicer) -> None:
        context = Mock()
        context.abort.side_effect = grpc.RpcError()

        with pytest.raises(grpc.RpcError):
            servicer.Execute({"owner_id": "owner-a"}, context)

        context.abort.assert_called_once_with(
            grpc.StatusCode.INVALID_ARGUMENT, "function_name is required"
        )

    def test_state_persists_between_calls(self, servicer) -> None:
        request = {"function_name": "create_client", "owner_id": "owner-a"}
        servicer.Execute({**request, "arguments": {"name": "Acme Corp"}}, Mock())

        response = servicer.Execute({**request, "arguments": {"name": "Acme Corp"}}, Mock())

        assert response["error"] == "Conflict"

    def test_list_functions(self, servicer) -> None:
        response = servicer.ListFunctions({}, Mock())

        assert response["version"] == CATALOG_VERSION
        assert len(response["functions"]) == len(FUNCTION_CATALOG)
        assert response["functions"][0]["type"] == "function"


class TestServerSetup:
    def test_registers_generic_handler(self, servicer) -> None:
        server = Mock()

        add_command_servicer_to_server(servicer, server)

        server.add_generic_rpc_handlers.assert_called_once()
        (handlers,) = server.add_generic_rpc_handlers.call_args.args
        assert isinstance(handlers[0], grpc.GenericRpcHandler)

    @patch.dict(os.environ, {"PORT": "6001"}, clear=True)
    @patch("invoice_engine.server.grpc.server")
    def test_create_server(self, mock_server: Mock, servicer) -> None:
        add_servicer = Mock()

        server, address = create_server(add_servicer, servicer, SERVICE_NAME, max_workers=2)

        assert server is mock_server.return_value
        assert address == "[::]:6001"
        add_servicer.assert_called_once_with(servicer, server)
        server.add_insecure_port.assert_called_once_with("[::]:6001")

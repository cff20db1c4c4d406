"""Unit tests for ESAProvider."""

import json
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests

from ddns_sync.errors import RecordListError, RecordWriteError, ZoneResolutionError
from ddns_sync.providers import ESAProvider, Record, Zone
from ddns_sync.signing import AliyunRpcAuth

ENDPOINT = "https://esa.cn-hangzhou.aliyuncs.com/"
ZONE = Zone(id="1234567890", name="example.com")


def make_provider() -> ESAProvider:
    return ESAProvider(access_key_id="LTAIid", access_key_secret="secret")


def make_response(data: Any, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.json.return_value = data
    response.text = json.dumps(data)
    return response


def sent_params(mock_get: MagicMock) -> dict:
    return mock_get.call_args.kwargs["params"]


class TestESASession:
    def test_session_signs_every_request(self) -> None:
        provider = make_provider()

        assert isinstance(provider._session.auth, AliyunRpcAuth)
        assert provider._session.auth.access_key_id == "LTAIid"
        assert provider.default_ttl == 30


class TestESAConnection:
    def test_test_connection_success(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"TotalCount": 0, "Sites": []})

            assert provider.test_connection() is True
            assert sent_params(mock_get)["Action"] == "ListSites"

    def test_test_connection_failure(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.ConnectionError("Connection refused")

            assert provider.test_connection() is False


class TestESAResolveZone:
    def test_resolve_zone_exact_match(self) -> None:
        provider = make_provider()
        data = {
            "TotalCount": 1,
            "Sites": [{"SiteId": 1234567890, "SiteName": "example.com"}],
        }

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response(data)

            zone = provider.resolve_zone("example.com")

            assert zone == ZONE
            mock_get.assert_called_once()
            assert mock_get.call_args.args == (ENDPOINT,)
            assert mock_get.call_args.kwargs["timeout"] == 10.0
            params = sent_params(mock_get)
            assert params["Action"] == "ListSites"
            assert params["Version"] == "2024-09-10"
            assert params["SiteName"] == "example.com"
            assert params["ExactMatch"] == "true"

    def test_resolve_zone_ignores_non_exact_names(self) -> None:
        provider = make_provider()
        data = {
            "TotalCount": 2,
            "Sites": [
                {"SiteId": 1, "SiteName": "myexample.com"},
                {"SiteId": 2, "SiteName": "example.com"},
            ],
        }

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response(data)

            assert provider.resolve_zone("example.com").id == "2"

    def test_resolve_zone_not_found(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"TotalCount": 0, "Sites": []})

            with pytest.raises(ZoneResolutionError, match="Site not found"):
                provider.resolve_zone("example.com")

    def test_resolve_zone_ambiguous(self) -> None:
        provider = make_provider()
        data = {
            "TotalCount": 2,
            "Sites": [
                {"SiteId": 1, "SiteName": "example.com"},
                {"SiteId": 2, "SiteName": "example.com"},
            ],
        }

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response(data)

            with pytest.raises(ZoneResolutionError, match="Ambiguous"):
                provider.resolve_zone("example.com")

    def test_resolve_zone_non_list_sites(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"TotalCount": 1, "Sites": 5})

            with pytest.raises(ZoneResolutionError, match="Unexpected site list"):
                provider.resolve_zone("example.com")

    def test_resolve_zone_http_error_carries_vendor_message(self) -> None:
        provider = make_provider()
        data = {"Code": "InvalidAccessKeyId.NotFound", "Message": "Specified access key is not found."}

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response(data, status_code=404)

            with pytest.raises(ZoneResolutionError, match="InvalidAccessKeyId.NotFound"):
                provider.resolve_zone("example.com")


class TestESAListRecords:
    def test_list_records_filters_exact_name_and_type(self) -> None:
        provider = make_provider()
        data = {
            "TotalCount": 3,
            "Records": [
                {"RecordId": 11, "RecordName": "home.example.com", "Type": "A", "Data": {"Value": "203.0.113.5"}},
                {"RecordId": 12, "RecordName": "home.example.com", "Type": "AAAA", "Data": {"Value": "2001:db8::1"}},
                {"RecordId": 13, "RecordName": "www.home.example.com", "Type": "A", "Data": {"Value": "203.0.113.6"}},
            ],
        }

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response(data)

            records = provider.list_records(ZONE, "home.example.com", "A")

            assert records == [
                Record(id="11", name="home.example.com", type="A", value="203.0.113.5")
            ]
            params = sent_params(mock_get)
            assert params["Action"] == "ListRecords"
            assert params["SiteId"] == "1234567890"
            assert params["RecordName"] == "home.example.com"
            assert params["RecordNameMode"] == "exact"
            assert params["Type"] == "A"

    def test_list_records_empty_is_not_an_error(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"TotalCount": 0, "Records": []})

            assert provider.list_records(ZONE, "home.example.com", "A") == []

    def test_list_records_skips_malformed_entries(self) -> None:
        provider = make_provider()
        data = {"Records": ["garbage", {"RecordName": "home.example.com", "Type": "A"}]}

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response(data)

            assert provider.list_records(ZONE, "home.example.com", "A") == []

    def test_list_records_non_list_records(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"TotalCount": 1, "Records": 5})

            with pytest.raises(RecordListError, match="Unexpected record list"):
                provider.list_records(ZONE, "home.example.com", "A")

    def test_list_records_missing_records_key_is_empty(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"TotalCount": 0})

            assert provider.list_records(ZONE, "home.example.com", "A") == []

    def test_list_records_transport_error(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.Timeout("timed out")

            with pytest.raises(RecordListError, match="timed out"):
                provider.list_records(ZONE, "home.example.com", "A")

    def test_list_records_malformed_body(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            response = make_response(None)
            response.json.side_effect = ValueError("No JSON object could be decoded")
            mock_get.return_value = response

            with pytest.raises(RecordListError, match="malformed"):
                provider.list_records(ZONE, "home.example.com", "A")


class TestESAWrites:
    def test_create_record_sends_data_and_ttl(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"RequestId": "req-1", "RecordId": 99})

            record_id = provider.create_record(
                ZONE, "home.example.com", "A", "203.0.113.5", None, {"Proxied": "true"}
            )

            assert record_id == "99"
            params = sent_params(mock_get)
            assert params["Action"] == "CreateRecord"
            assert params["SiteId"] == "1234567890"
            assert params["RecordName"] == "home.example.com"
            assert params["Type"] == "A"
            assert json.loads(params["Data"]) == {"Value": "203.0.113.5"}
            assert params["TTL"] == "30"
            assert params["Proxied"] == "true"
            assert "RecordId" not in params

    def test_engine_keys_override_custom_params(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"RequestId": "req-1"})

            provider.create_record(
                ZONE, "home.example.com", "A", "203.0.113.5", 600, {"Type": "CNAME", "TTL": "1"}
            )

            params = sent_params(mock_get)
            assert params["Type"] == "A"
            assert params["TTL"] == "600"

    def test_update_record_is_full_replace(self) -> None:
        provider = make_provider()
        record = Record(id="11", name="home.example.com", type="A", value="203.0.113.5")

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response({"RequestId": "req-2"})

            provider.update_record(ZONE, record, "home.example.com", "A", "203.0.113.9", 120, {})

            params = sent_params(mock_get)
            assert params["Action"] == "UpdateRecord"
            assert params["RecordId"] == "11"
            assert json.loads(params["Data"]) == {"Value": "203.0.113.9"}
            assert params["TTL"] == "120"

    def test_write_rejected_by_vendor(self) -> None:
        provider = make_provider()
        data = {"Code": "InvalidParameter.TTL", "Message": "The specified TTL is invalid."}

        with patch.object(provider._session, "get") as mock_get:
            mock_get.return_value = make_response(data, status_code=400)

            with pytest.raises(RecordWriteError, match="HTTP 400"):
                provider.create_record(ZONE, "home.example.com", "A", "203.0.113.5", 5, {})

"""DNS provider interface and vendor implementations.

The reconciler only talks to DNSProvider. Every implementation hides its own
wire format and authentication behind four operations (resolve_zone,
list_records, create_record, update_record) and reports failures with the
exceptions from ddns_sync.errors, carrying the vendor's error text.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Type

import requests

from ddns_sync.errors import (
    ConfigError,
    ProviderError,
    RecordListError,
    RecordWriteError,
    ZoneResolutionError,
)
from ddns_sync.signing import AliyunRpcAuth, BearerTokenAuth
from ddns_sync.utils import parse_bool

logger = logging.getLogger(__name__)

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Zone:
    """Provider-side grouping (zone or site) that owns a domain's records."""

    id: str
    name: str


@dataclass(frozen=True)
class Record:
    """An address record as reported by the provider."""

    id: str
    name: str
    type: str
    value: str


# =============================================================================
# DNS Provider Interface
# =============================================================================


class DNSProvider(ABC):
    """Abstract base class for DNS providers."""

    #: TTL used when none is configured; acceptable ranges differ per vendor.
    default_ttl: int = 600

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection and credentials."""
        pass

    @abstractmethod
    def resolve_zone(self, domain_name: str) -> Zone:
        """Find the zone whose name is exactly domain_name.

        Raises:
            ZoneResolutionError: no zone, or more than one, has that name
        """
        pass

    @abstractmethod
    def list_records(self, zone: Zone, full_domain: str, record_type: str) -> List[Record]:
        """Records in zone with exactly this name and type; empty if none exist yet.

        Raises:
            RecordListError: the listing call failed
        """
        pass

    @abstractmethod
    def create_record(
        self,
        zone: Zone,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> str:
        """Create a record and return its provider id.

        Raises:
            RecordWriteError: the provider rejected the record or the call failed
        """
        pass

    @abstractmethod
    def update_record(
        self,
        zone: Zone,
        record: Record,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> None:
        """Replace the value of an existing record.

        Raises:
            RecordWriteError: the provider rejected the record or the call failed
        """
        pass

    def effective_ttl(self, ttl: Optional[int]) -> int:
        return ttl if ttl else self.default_ttl


def _decode_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


# =============================================================================
# Alibaba Cloud ESA
# =============================================================================


class ESAProvider(DNSProvider):
    """Alibaba Cloud Edge Security Acceleration (ESA) DNS records.

    ESA calls zones "sites". The API is RPC style: every call is a signed GET
    with the action and its arguments in the query string.
    """

    ENDPOINT = "https://esa.cn-hangzhou.aliyuncs.com/"
    API_VERSION = "2024-09-10"

    # ESA accepts 1 (automatic) or 30..86400
    default_ttl = 30

    def __init__(
        self,
        access_key_id: str,
        access_key_secret: str,
        endpoint: str = ENDPOINT,
        timeout_seconds: float = 10.0,
    ):
        self._endpoint = endpoint
        self._timeout = timeout_seconds
        self._session = requests.Session()
        self._session.auth = AliyunRpcAuth(access_key_id, access_key_secret)

    @property
    def name(self) -> str:
        return "Alibaba Cloud ESA"

    def _request(
        self, action: str, params: Mapping[str, str], error_cls: Type[ProviderError]
    ) -> Dict[str, Any]:
        query = dict(params)
        query["Action"] = action
        query["Version"] = self.API_VERSION

        try:
            response = self._session.get(self._endpoint, params=query, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise error_cls(f"{action} request failed: {e}") from e

        data = _decode_json(response)
        if not response.ok:
            message = response.text
            if isinstance(data, dict) and (data.get("Message") or data.get("Code")):
                message = f"{data.get('Code', '')}: {data.get('Message', '')}"
            raise error_cls(f"{action} failed with HTTP {response.status_code}: {message}")
        if not isinstance(data, dict):
            raise error_cls(f"{action} returned a malformed response body")
        return data

    def test_connection(self) -> bool:
        try:
            self._request("ListSites", {"PageSize": "1"}, ProviderError)
            logger.info(f"{self.name} connection successful")
            return True
        except ProviderError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def resolve_zone(self, domain_name: str) -> Zone:
        data = self._request(
            "ListSites", {"SiteName": domain_name, "ExactMatch": "true"}, ZoneResolutionError
        )
        sites = data.get("Sites") or []
        if not isinstance(sites, list):
            raise ZoneResolutionError(f"Unexpected site list for {domain_name}: {sites!r}")
        matches = [
            site
            for site in sites
            if isinstance(site, dict)
            and str(site.get("SiteName") or "").rstrip(".").lower() == domain_name.lower()
            and site.get("SiteId") is not None
        ]
        if not matches:
            raise ZoneResolutionError(f"Site not found for domain: {domain_name}")
        if len(matches) > 1:
            raise ZoneResolutionError(
                f"Ambiguous site lookup for domain {domain_name}: {len(matches)} sites match"
            )
        site = matches[0]
        return Zone(id=str(site["SiteId"]), name=str(site["SiteName"]))

    def list_records(self, zone: Zone, full_domain: str, record_type: str) -> List[Record]:
        data = self._request(
            "ListRecords",
            {
                "SiteId": zone.id,
                "RecordName": full_domain,
                "RecordNameMode": "exact",
                "Type": record_type,
            },
            RecordListError,
        )

        items = data.get("Records") or []
        if not isinstance(items, list):
            raise RecordListError(f"Unexpected record list for {full_domain}: {items!r}")

        records: List[Record] = []
        for r in items:
            if not isinstance(r, dict) or r.get("RecordId") is None:
                logger.warning(f"Skipping malformed record: {r}")
                continue
            if str(r.get("RecordName") or "").lower() != full_domain.lower():
                continue
            if str(r.get("Type") or "").upper() != record_type:
                continue
            record_data = r.get("Data") if isinstance(r.get("Data"), dict) else {}
            records.append(
                Record(
                    id=str(r["RecordId"]),
                    name=str(r["RecordName"]),
                    type=record_type,
                    value=str(record_data.get("Value") or ""),
                )
            )
        return records

    def _write_params(
        self,
        zone: Zone,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> Dict[str, str]:
        params = dict(extra_params)
        params.update(
            {
                "SiteId": zone.id,
                "RecordName": full_domain,
                "Type": record_type,
                "Data": json.dumps({"Value": value}),
                "TTL": str(self.effective_ttl(ttl)),
            }
        )
        return params

    def create_record(
        self,
        zone: Zone,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> str:
        params = self._write_params(zone, full_domain, record_type, value, ttl, extra_params)
        data = self._request("CreateRecord", params, RecordWriteError)
        return str(data.get("RecordId") or "")

    def update_record(
        self,
        zone: Zone,
        record: Record,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> None:
        params = self._write_params(zone, full_domain, record_type, value, ttl, extra_params)
        params["RecordId"] = record.id
        self._request("UpdateRecord", params, RecordWriteError)


# =============================================================================
# Cloudflare
# =============================================================================


class CloudflareProvider(DNSProvider):
    """Cloudflare DNS via the v4 REST API and an API token."""

    API_BASE = "https://api.cloudflare.com/client/v4"

    # 1 means "automatic"
    default_ttl = 1

    def __init__(self, api_token: str, api_base: str = API_BASE, timeout_seconds: float = 10.0):
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout_seconds
        self._session = requests.Session()
        self._session.auth = BearerTokenAuth(api_token)

    @property
    def name(self) -> str:
        return "Cloudflare"

    def _request(
        self,
        method: str,
        path: str,
        error_cls: Type[ProviderError],
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = self._session.request(
                method,
                f"{self._api_base}{path}",
                params=params,
                json=payload,
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            raise error_cls(f"{method} {path} failed: {e}") from e

        data = _decode_json(response)
        if not isinstance(data, dict):
            raise error_cls(
                f"{method} {path} returned a malformed response body (HTTP {response.status_code})"
            )
        if not response.ok or not data.get("success"):
            errors = data.get("errors") or []
            messages = [
                str(e.get("message")) if isinstance(e, dict) else str(e) for e in errors
            ] or [f"HTTP {response.status_code}"]
            raise error_cls(f"{method} {path} failed: {'; '.join(messages)}")
        return data.get("result")

    def test_connection(self) -> bool:
        try:
            self._request("GET", "/user/tokens/verify", ProviderError)
            logger.info(f"{self.name} connection successful")
            return True
        except ProviderError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def resolve_zone(self, domain_name: str) -> Zone:
        result = self._request("GET", "/zones", ZoneResolutionError, params={"name": domain_name})
        matches = [
            z
            for z in (result if isinstance(result, list) else [])
            if isinstance(z, dict)
            and str(z.get("name") or "").lower() == domain_name.lower()
            and z.get("id")
        ]
        if not matches:
            raise ZoneResolutionError(f"Zone not found for domain: {domain_name}")
        if len(matches) > 1:
            raise ZoneResolutionError(
                f"Ambiguous zone lookup for domain {domain_name}: {len(matches)} zones match"
            )
        return Zone(id=str(matches[0]["id"]), name=str(matches[0]["name"]))

    def list_records(self, zone: Zone, full_domain: str, record_type: str) -> List[Record]:
        result = self._request(
            "GET",
            f"/zones/{zone.id}/dns_records",
            RecordListError,
            params={"type": record_type, "name": full_domain},
        )
        if not isinstance(result, list):
            raise RecordListError(f"Unexpected record list for {full_domain}: {result!r}")

        records: List[Record] = []
        for r in result:
            if not isinstance(r, dict) or not r.get("id"):
                logger.warning(f"Skipping malformed record: {r}")
                continue
            if str(r.get("name") or "").lower() != full_domain.lower():
                continue
            if str(r.get("type") or "").upper() != record_type:
                continue
            records.append(
                Record(
                    id=str(r["id"]),
                    name=str(r["name"]),
                    type=record_type,
                    value=str(r.get("content") or ""),
                )
            )
        return records

    def _payload(
        self,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for key, param in extra_params.items():
            # Cloudflare field names are lowercase; accept "Proxied" as well
            if key.lower() == "proxied":
                payload["proxied"] = parse_bool(param, default=False)
            else:
                payload[key] = param
        payload.update(
            {
                "type": record_type,
                "name": full_domain,
                "content": value,
                "ttl": self.effective_ttl(ttl),
            }
        )
        return payload

    def create_record(
        self,
        zone: Zone,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> str:
        result = self._request(
            "POST",
            f"/zones/{zone.id}/dns_records",
            RecordWriteError,
            payload=self._payload(full_domain, record_type, value, ttl, extra_params),
        )
        return str(result.get("id") or "") if isinstance(result, dict) else ""

    def update_record(
        self,
        zone: Zone,
        record: Record,
        full_domain: str,
        record_type: str,
        value: str,
        ttl: Optional[int],
        extra_params: Mapping[str, str],
    ) -> None:
        self._request(
            "PUT",
            f"/zones/{zone.id}/dns_records/{record.id}",
            RecordWriteError,
            payload=self._payload(full_domain, record_type, value, ttl, extra_params),
        )


# =============================================================================
# Provider Registry
# =============================================================================

SUPPORTED_PROVIDERS = ("esa", "cloudflare")


def create_dns_provider(
    provider: str, access_id: str, secret: str, timeout_seconds: float = 10.0
) -> DNSProvider:
    """Factory function to create the configured DNS provider.

    For Cloudflare the API token is taken from secret; access_id is unused.
    """
    provider = (provider or "").lower().strip()
    if provider == "esa":
        return ESAProvider(access_id, secret, timeout_seconds=timeout_seconds)
    elif provider == "cloudflare":
        return CloudflareProvider(secret, timeout_seconds=timeout_seconds)
    else:
        raise ConfigError(
            f"Unsupported DNS provider: '{provider}'. Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
        )

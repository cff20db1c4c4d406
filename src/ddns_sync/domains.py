"""Configured hostnames and their per-address-family update status."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl

from ddns_sync.errors import ConfigError

# =============================================================================
# Enums
# =============================================================================


class AddressFamily(Enum):
    """Address family tracked independently by the reconciler."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @property
    def record_type(self) -> str:
        return "A" if self is AddressFamily.IPV4 else "AAAA"

    @property
    def label(self) -> str:
        return "IPv4" if self is AddressFamily.IPV4 else "IPv6"


class UpdateStatus(Enum):
    """Outcome of the most recent reconciliation attempt."""

    NOT_EXECUTED = "not_executed"
    SUCCESS = "success"
    FAILED = "failed"


# =============================================================================
# Domain
# =============================================================================


@dataclass
class Domain:
    """One hostname kept in sync, split into subdomain and root domain.

    The custom parameter bag is handed to the DNS provider untouched; the
    reconciler never looks inside it. A hostname configured for both address
    families keeps one bag per family in family_params, and custom_params is
    the fallback for a family without its own entry.
    """

    sub_domain: str
    domain_name: str
    custom_params: Dict[str, str] = field(default_factory=dict)
    status: Dict[AddressFamily, UpdateStatus] = field(default_factory=dict)
    family_params: Dict[AddressFamily, Dict[str, str]] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.sub_domain, self.domain_name)

    @property
    def full_domain(self) -> str:
        if self.sub_domain:
            return f"{self.sub_domain}.{self.domain_name}"
        return self.domain_name

    @property
    def sub_domain_label(self) -> str:
        """Subdomain as shown by most DNS panels; the apex is '@'."""
        return self.sub_domain or "@"

    def params_for(self, family: AddressFamily) -> Dict[str, str]:
        return self.family_params.get(family, self.custom_params)

    def status_for(self, family: AddressFamily) -> UpdateStatus:
        return self.status.get(family, UpdateStatus.NOT_EXECUTED)

    def set_status(self, family: AddressFamily, status: UpdateStatus) -> None:
        self.status[family] = status

    def __str__(self) -> str:
        return self.full_domain


def parse_domain(entry: str) -> Domain:
    """Parse one configured hostname.

    Accepted forms:
        home.example.com                 root domain is the last two labels
        home:example.co.uk               explicit subdomain/root split
        example.com                      apex record
        home.example.com?Proxied=true    trailing query holds custom parameters

    Raises:
        ConfigError: if the entry is not a usable hostname
    """
    raw = (entry or "").strip()
    host, _, query = raw.partition("?")
    host = host.strip().rstrip(".").lower()
    if not host:
        raise ConfigError(f"Empty domain entry: '{entry}'")

    if ":" in host:
        sub_domain, _, domain_name = host.partition(":")
        sub_domain = sub_domain.strip(".")
        domain_name = domain_name.strip(".")
    else:
        labels = host.split(".")
        if len(labels) < 2:
            raise ConfigError(f"Domain '{entry}' has no root domain")
        domain_name = ".".join(labels[-2:])
        sub_domain = ".".join(labels[:-2])

    if "." not in domain_name or any(not label for label in domain_name.split(".")):
        raise ConfigError(f"Domain '{entry}' has an invalid root domain '{domain_name}'")

    custom_params = dict(parse_qsl(query, keep_blank_values=True)) if query else {}
    return Domain(sub_domain=sub_domain, domain_name=domain_name, custom_params=custom_params)


# =============================================================================
# Domain Set
# =============================================================================


class DomainSet:
    """Ordered domains per address family.

    A hostname configured for both families is a single Domain object, so its
    IPv4 and IPv6 status live side by side.
    """

    def __init__(
        self,
        ipv4_domains: Optional[List[Domain]] = None,
        ipv6_domains: Optional[List[Domain]] = None,
    ):
        self._domains: Dict[AddressFamily, List[Domain]] = {
            AddressFamily.IPV4: list(ipv4_domains or []),
            AddressFamily.IPV6: list(ipv6_domains or []),
        }
        for family, domains in self._domains.items():
            _check_duplicates(family, domains)

    @classmethod
    def from_entries(
        cls, ipv4_entries: Iterable[str], ipv6_entries: Iterable[str]
    ) -> "DomainSet":
        by_key: Dict[Tuple[str, str], Domain] = {}

        def build(entries: Iterable[str], family: AddressFamily) -> List[Domain]:
            result: List[Domain] = []
            for entry in entries:
                if not entry or not entry.strip():
                    continue
                parsed = parse_domain(entry)
                domain = by_key.setdefault(parsed.key, parsed)
                domain.family_params[family] = parsed.custom_params
                result.append(domain)
            _check_duplicates(family, result)
            return result

        return cls(
            ipv4_domains=build(ipv4_entries, AddressFamily.IPV4),
            ipv6_domains=build(ipv6_entries, AddressFamily.IPV6),
        )

    def domains_for(self, family: AddressFamily) -> List[Domain]:
        return list(self._domains[family])

    def all_domains(self) -> List[Domain]:
        """Every distinct domain, in first-configured order."""
        result: List[Domain] = []
        for domains in self._domains.values():
            for domain in domains:
                if not any(domain is d for d in result):
                    result.append(domain)
        return result

    def __len__(self) -> int:
        return len(self.all_domains())


def _check_duplicates(family: AddressFamily, domains: List[Domain]) -> None:
    seen = set()
    for domain in domains:
        if domain.key in seen:
            raise ConfigError(
                f"Domain '{domain.full_domain}' is listed multiple times for {family.label}"
            )
        seen.add(domain.key)

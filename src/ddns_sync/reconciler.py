"""Reconciliation driver.

For each address family, decides per domain whether the provider record must
be created, updated, or left alone, and reports the outcome of every domain.
A failing domain never stops its siblings: provider errors are caught at the
domain boundary and recorded as a failed outcome.
"""

from __future__ import annotations

import ipaddress
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ddns_sync.domains import AddressFamily, Domain, DomainSet, UpdateStatus
from ddns_sync.errors import ProviderError
from ddns_sync.ip_cache import IPCache
from ddns_sync.providers import DNSProvider

logger = logging.getLogger(__name__)

SKIP_NO_ADDRESS = "no-address"
SKIP_NO_DOMAINS = "no-domains"
SKIP_UNCHANGED = "unchanged"


def same_address(recorded: str, ip: str) -> bool:
    """Compare addresses by value, so "2001:DB8::1" matches "2001:db8::1"."""
    try:
        return ipaddress.ip_address(recorded.strip()) == ipaddress.ip_address(ip.strip())
    except ValueError:
        return recorded == ip


# =============================================================================
# Reports
# =============================================================================


class Action(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class DomainOutcome:
    """Result of reconciling one domain for one address family."""

    domain: Domain
    family: AddressFamily
    status: UpdateStatus
    action: Action
    value: str = ""
    reason: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is UpdateStatus.SUCCESS


@dataclass
class PassReport:
    """Result of one reconciliation pass for one address family.

    skipped is set (to one of the SKIP_* reasons) when the pass did not touch
    the provider at all; domain statuses are left as they were in that case.
    """

    family: AddressFamily
    ip: str
    outcomes: List[DomainOutcome] = field(default_factory=list)
    skipped: Optional[str] = None
    cache_advanced: bool = False

    @property
    def succeeded(self) -> List[DomainOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> List[DomainOutcome]:
        return [o for o in self.outcomes if not o.succeeded]


@dataclass
class ReconcileReport:
    ipv4: PassReport
    ipv6: PassReport

    @property
    def passes(self) -> List[PassReport]:
        return [self.ipv4, self.ipv6]

    @property
    def outcomes(self) -> List[DomainOutcome]:
        return self.ipv4.outcomes + self.ipv6.outcomes

    @property
    def has_failures(self) -> bool:
        return any(not o.succeeded for o in self.outcomes)

    def summary(self) -> str:
        parts = []
        for report in self.passes:
            if report.skipped:
                parts.append(f"{report.family.label}: skipped ({report.skipped})")
            else:
                parts.append(
                    f"{report.family.label}: {len(report.succeeded)} ok, {len(report.failed)} failed"
                )
        return ", ".join(parts)


# =============================================================================
# Reconciler
# =============================================================================


class Reconciler:
    """Drives one DNSProvider towards the current addresses.

    Args:
        provider: the DNS provider to reconcile against
        ipv4_cache: cache of the last applied IPv4 address
        ipv6_cache: cache of the last applied IPv6 address
        ttl: configured TTL, or None for the provider default
        max_workers: domains processed concurrently within one pass
    """

    def __init__(
        self,
        *,
        provider: DNSProvider,
        ipv4_cache: IPCache,
        ipv6_cache: IPCache,
        ttl: Optional[int] = None,
        max_workers: int = 1,
    ):
        self.provider = provider
        self.ttl = ttl
        self.max_workers = max(1, max_workers)
        self._caches: Dict[AddressFamily, IPCache] = {
            AddressFamily.IPV4: ipv4_cache,
            AddressFamily.IPV6: ipv6_cache,
        }

    def cache_for(self, family: AddressFamily) -> IPCache:
        return self._caches[family]

    def reconcile(self, domain_set: DomainSet, ipv4: str, ipv6: str) -> ReconcileReport:
        """Run the IPv4 pass, then the IPv6 pass."""
        return ReconcileReport(
            ipv4=self.reconcile_family(
                AddressFamily.IPV4, ipv4, domain_set.domains_for(AddressFamily.IPV4)
            ),
            ipv6=self.reconcile_family(
                AddressFamily.IPV6, ipv6, domain_set.domains_for(AddressFamily.IPV6)
            ),
        )

    def reconcile_family(
        self, family: AddressFamily, ip: str, domains: List[Domain]
    ) -> PassReport:
        if not ip:
            logger.debug(f"No {family.label} address available, skipping {family.label} pass")
            return PassReport(family=family, ip="", skipped=SKIP_NO_ADDRESS)
        if not domains:
            return PassReport(family=family, ip=ip, skipped=SKIP_NO_DOMAINS)

        cache = self.cache_for(family)
        if cache.is_current(ip):
            logger.info(f"Your {family.label} address {ip} has not changed, skipping update")
            return PassReport(family=family, ip=ip, skipped=SKIP_UNCHANGED)

        outcomes = self._process_domains(family, ip, domains)
        report = PassReport(family=family, ip=ip, outcomes=outcomes)

        succeeded = report.succeeded
        if succeeded and all(o.value == ip for o in succeeded):
            cache.advance(ip)
            report.cache_advanced = True
        return report

    def _process_domains(
        self, family: AddressFamily, ip: str, domains: List[Domain]
    ) -> List[DomainOutcome]:
        if self.max_workers == 1 or len(domains) == 1:
            return [self._run_domain(family, ip, domain) for domain in domains]

        workers = min(self.max_workers, len(domains))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ddns") as executor:
            return list(executor.map(lambda d: self._run_domain(family, ip, d), domains))

    def _run_domain(self, family: AddressFamily, ip: str, domain: Domain) -> DomainOutcome:
        try:
            return self._reconcile_domain(family, ip, domain)
        except Exception as e:
            logger.exception(f"Unexpected error reconciling {domain} ({family.record_type}): {e}")
            return self._failed(domain, family, e)

    def _reconcile_domain(self, family: AddressFamily, ip: str, domain: Domain) -> DomainOutcome:
        record_type = family.record_type
        domain.set_status(family, UpdateStatus.NOT_EXECUTED)

        try:
            zone = self.provider.resolve_zone(domain.domain_name)
        except ProviderError as e:
            logger.error(f"Failed to get zone for {domain.domain_name} ({domain}): {e}")
            return self._failed(domain, family, e)

        try:
            records = self.provider.list_records(zone, domain.full_domain, record_type)
        except ProviderError as e:
            logger.error(f"Failed to list {record_type} records for {domain}: {e}")
            return self._failed(domain, family, e)

        if records:
            # Only the first match is managed; extra records are left untouched.
            record = records[0]
            if len(records) > 1:
                logger.warning(
                    f"Found {len(records)} {record_type} records for {domain}, only managing record {record.id}"
                )
            if same_address(record.value, ip):
                logger.info(f"Your IP {ip} has not changed, domain {domain}")
                return self._succeeded(domain, family, Action.UNCHANGED, ip)

            try:
                self.provider.update_record(
                    zone,
                    record,
                    domain.full_domain,
                    record_type,
                    ip,
                    self.ttl,
                    domain.params_for(family),
                )
            except ProviderError as e:
                logger.error(f"Failed to update record {domain} ({record_type}): {e}")
                return self._failed(domain, family, e)
            logger.info(f"Updated record {domain} ({record_type}): {record.value} -> {ip}")
            return self._succeeded(domain, family, Action.UPDATED, ip)

        try:
            self.provider.create_record(
                zone, domain.full_domain, record_type, ip, self.ttl, domain.params_for(family)
            )
        except ProviderError as e:
            logger.error(f"Failed to add record {domain} ({record_type}): {e}")
            return self._failed(domain, family, e)
        logger.info(f"Added record {domain} ({record_type}) -> {ip}")
        return self._succeeded(domain, family, Action.CREATED, ip)

    @staticmethod
    def _succeeded(
        domain: Domain, family: AddressFamily, action: Action, value: str
    ) -> DomainOutcome:
        domain.set_status(family, UpdateStatus.SUCCESS)
        return DomainOutcome(
            domain=domain, family=family, status=UpdateStatus.SUCCESS, action=action, value=value
        )

    @staticmethod
    def _failed(domain: Domain, family: AddressFamily, error: Exception) -> DomainOutcome:
        domain.set_status(family, UpdateStatus.FAILED)
        return DomainOutcome(
            domain=domain,
            family=family,
            status=UpdateStatus.FAILED,
            action=Action.FAILED,
            reason=str(error),
        )

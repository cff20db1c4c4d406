#!/usr/bin/env python3
"""ddns-sync - Dynamic DNS reconciliation

Keeps the A/AAAA records of a set of hostnames pointed at this host's current
public IPv4/IPv6 address, creating or updating records at the DNS provider
only when they differ.

Supported DNS Providers:
    - esa: Alibaba Cloud ESA (Edge Security Acceleration)
    - cloudflare: Cloudflare DNS (API token)

Environment variables:

    Configuration:
        DDNS_CONFIG_PATH       YAML config file, or directory of *.yaml files
                               (default: /config/ddns.yaml). See ddns_sync.config
                               for the file format.

    Provider (override the config file when set):
        DNS_PROVIDER           "esa" or "cloudflare" (default: esa)
        DNS_ID                 Access key id (esa)
        DNS_SECRET             Access key secret (esa) or API token (cloudflare)
        DNS_TTL                Record TTL in seconds (default: provider default)

    Domains (used when the config file lists none):
        IPV4_DOMAINS           Comma-separated hostnames for A records
        IPV6_DOMAINS           Comma-separated hostnames for AAAA records
                               Formats: "home.example.com", "home:example.co.uk",
                               "home.example.com?Proxied=true" (custom provider params)
        IPV4_ENABLED           Track IPv4 (default: true)
        IPV6_ENABLED           Track IPv6 (default: true)
        IPV4_URLS / IPV6_URLS  Comma-separated address discovery services

    Runtime:
        SYNC_MODE              "once" or "watch" (polling loop) (default: watch)
        POLL_INTERVAL_SECONDS  Poll interval in watch mode (default: 300, minimum: 5)
        IP_CACHE_TIMES         Unchanged cycles skipped before a forced check
                               (default: 5, 0 = never force)
        MAX_WORKERS            Domains reconciled concurrently (default: 4)
        HTTP_TIMEOUT_SECONDS   Timeout for every provider/discovery request (default: 10)
        LOG_LEVEL              DEBUG, INFO, WARNING, ERROR (default: INFO)
"""

from __future__ import annotations

import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ddns_sync.config import (
    DDNSConfig,
    find_config_files,
    get_config_files_mtimes,
    load_config,
)
from ddns_sync.domains import AddressFamily, DomainSet
from ddns_sync.errors import ConfigError
from ddns_sync.ip_cache import IPCache
from ddns_sync.ip_discovery import IPDiscovery
from ddns_sync.providers import DNSProvider, create_dns_provider
from ddns_sync.reconciler import ReconcileReport, Reconciler

# =============================================================================
# Configuration
# =============================================================================

DDNS_CONFIG_PATH = os.getenv("DDNS_CONFIG_PATH", "/config/ddns.yaml")
SYNC_MODE = os.getenv("SYNC_MODE", "watch")
POLL_INTERVAL_SECONDS = int(os.getenv("POLL_INTERVAL_SECONDS", "300"))
IP_CACHE_TIMES = int(os.getenv("IP_CACHE_TIMES", "5"))
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "4"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =============================================================================
# Logging Setup
# =============================================================================

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# =============================================================================
# Runtime
# =============================================================================


@dataclass
class Runtime:
    """Everything built from one configuration snapshot."""

    config: DDNSConfig
    provider: DNSProvider
    domain_set: DomainSet
    discovery: IPDiscovery
    reconciler: Reconciler


def build_runtime(
    config: DDNSConfig,
    ipv4_cache: IPCache,
    ipv6_cache: IPCache,
    *,
    max_workers: int = 1,
    timeout_seconds: float = 10.0,
) -> Runtime:
    provider = create_dns_provider(
        config.provider, config.access_id, config.secret, timeout_seconds=timeout_seconds
    )
    domain_set = config.build_domain_set()
    discovery = IPDiscovery(
        ipv4_urls=config.discovery_urls(AddressFamily.IPV4),
        ipv6_urls=config.discovery_urls(AddressFamily.IPV6),
        timeout_seconds=timeout_seconds,
    )
    reconciler = Reconciler(
        provider=provider,
        ipv4_cache=ipv4_cache,
        ipv6_cache=ipv6_cache,
        ttl=config.ttl,
        max_workers=max_workers,
    )
    return Runtime(
        config=config,
        provider=provider,
        domain_set=domain_set,
        discovery=discovery,
        reconciler=reconciler,
    )


def run_once(runtime: Runtime) -> ReconcileReport:
    """Discover the current addresses and run one reconciliation pass per family."""
    domain_set = runtime.domain_set
    ipv4 = ""
    ipv6 = ""
    if domain_set.domains_for(AddressFamily.IPV4):
        ipv4 = runtime.discovery.current_ipv4()
    if domain_set.domains_for(AddressFamily.IPV6):
        ipv6 = runtime.discovery.current_ipv6()

    report = runtime.reconciler.reconcile(domain_set, ipv4, ipv6)
    logger.info(f"Reconciliation finished: {report.summary()}")
    return report


def load_valid_config(config_path: str) -> Optional[DDNSConfig]:
    """Load and validate configuration, logging every problem found."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error(str(e))
        return None

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        return None
    return config


def _describe(runtime: Runtime) -> None:
    config = runtime.config
    logger.info(f"DNS Provider: {runtime.provider.name}")
    if config.sources:
        logger.info(f"Config files: {', '.join(config.sources)}")
    for family in AddressFamily:
        domains = runtime.domain_set.domains_for(family)
        if domains:
            logger.info(f"{family.label} domains: {', '.join(str(d) for d in domains)}")
    ttl = config.ttl if config.ttl else f"{runtime.provider.default_ttl} (provider default)"
    logger.info(f"TTL: {ttl}")


# =============================================================================
# Main
# =============================================================================


def main():
    """Main entry point."""
    logger.info(f"ddns-sync: config {DDNS_CONFIG_PATH}, mode {SYNC_MODE}")

    if SYNC_MODE not in ("once", "watch"):
        logger.error(f"Invalid SYNC_MODE: {SYNC_MODE}. Use 'once' or 'watch'")
        sys.exit(1)

    config = load_valid_config(DDNS_CONFIG_PATH)
    if config is None:
        logger.error("Configuration validation failed")
        sys.exit(1)

    ipv4_cache = IPCache(AddressFamily.IPV4, force_after=IP_CACHE_TIMES)
    ipv6_cache = IPCache(AddressFamily.IPV6, force_after=IP_CACHE_TIMES)
    runtime = build_runtime(
        config,
        ipv4_cache,
        ipv6_cache,
        max_workers=MAX_WORKERS,
        timeout_seconds=HTTP_TIMEOUT_SECONDS,
    )
    _describe(runtime)

    if not runtime.provider.test_connection():
        logger.error(f"Cannot connect to {runtime.provider.name}. Exiting.")
        sys.exit(1)

    try:
        if SYNC_MODE == "once":
            report = run_once(runtime)
            if report.has_failures:
                sys.exit(1)
            return

        logger.info(f"Poll interval: {max(5, POLL_INTERVAL_SECONDS)}s")

        config_files = find_config_files(DDNS_CONFIG_PATH)
        last_config_mtimes = get_config_files_mtimes(config_files)

        while True:
            run_once(runtime)

            current_config_files = find_config_files(DDNS_CONFIG_PATH)
            current_mtimes = get_config_files_mtimes(current_config_files)

            files_changed = (
                set(current_config_files) != set(config_files)
                or current_mtimes != last_config_mtimes
            )

            if files_changed:
                changed_files: List[str] = sorted(
                    set(current_config_files) ^ set(config_files)
                ) or [
                    f
                    for f in current_config_files
                    if current_mtimes.get(f, 0) != last_config_mtimes.get(f, 0)
                ]
                logger.info(
                    f"Config change detected in: {', '.join([Path(f).name for f in changed_files])}"
                )

                config_files = current_config_files
                last_config_mtimes = current_mtimes

                new_config = load_valid_config(DDNS_CONFIG_PATH)
                if new_config is None:
                    logger.warning("Continuing with previous configuration")
                else:
                    try:
                        runtime = build_runtime(
                            new_config,
                            ipv4_cache,
                            ipv6_cache,
                            max_workers=MAX_WORKERS,
                            timeout_seconds=HTTP_TIMEOUT_SECONDS,
                        )
                        ipv4_cache.reset()
                        ipv6_cache.reset()
                        _describe(runtime)

                        logger.info("Triggering immediate sync after config reload")
                        run_once(runtime)
                    except ConfigError as e:
                        logger.error(f"Failed to reload configuration: {e}", exc_info=True)
                        logger.warning("Continuing with previous configuration")

            time.sleep(max(5, POLL_INTERVAL_SECONDS))

    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Configuration snapshot.

Configuration comes from YAML file(s) with environment variable overrides.
Example config file:

    dns:
      provider: esa            # esa | cloudflare
      id: LTAI5t...            # access key id (unused for cloudflare)
      secret: "..."            # access key secret / API token
    ttl: 600                   # optional, provider default when unset
    ipv4:
      enabled: true
      urls:
        - https://api.ipify.org
      domains:
        - home.example.com
        - www:example.co.uk?Proxied=true
    ipv6:
      enabled: false

A snapshot is immutable; on reload the whole snapshot is replaced.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from ddns_sync.domains import AddressFamily, DomainSet
from ddns_sync.errors import ConfigError
from ddns_sync.ip_discovery import DEFAULT_IPV4_URLS, DEFAULT_IPV6_URLS
from ddns_sync.providers import SUPPORTED_PROVIDERS
from ddns_sync.utils import parse_bool, parse_int, parse_list

logger = logging.getLogger(__name__)

# =============================================================================
# File Watching Utilities
# =============================================================================


def get_config_file_mtime(config_path: str) -> float:
    """Get modification time of config file, returns 0 if file doesn't exist."""
    try:
        return os.path.getmtime(config_path) if os.path.exists(config_path) else 0.0
    except OSError:
        return 0.0


def find_config_files(config_path: str) -> List[str]:
    """Find all .yaml config files in directory or return single file.

    Args:
        config_path: Path to config file or directory

    Returns:
        List of config file paths (excluding .template files)
    """
    path = Path(config_path)

    if path.is_file():
        return [str(path)]

    if path.is_dir():
        yaml_files = sorted(path.glob("*.yaml"))
        return [str(f) for f in yaml_files if not f.name.endswith(".template")]

    return []


def get_config_files_mtimes(config_files: List[str]) -> Dict[str, float]:
    """Get modification times for all config files."""
    return {f: get_config_file_mtime(f) for f in config_files}


# =============================================================================
# Snapshot
# =============================================================================


@dataclass(frozen=True)
class FamilyConfig:
    enabled: bool = True
    urls: Tuple[str, ...] = ()
    domains: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DDNSConfig:
    provider: str = "esa"
    access_id: str = ""
    secret: str = ""
    ttl: Optional[int] = None
    ipv4: FamilyConfig = field(default_factory=FamilyConfig)
    ipv6: FamilyConfig = field(default_factory=FamilyConfig)
    sources: Tuple[str, ...] = ()

    def family(self, family: AddressFamily) -> FamilyConfig:
        return self.ipv4 if family is AddressFamily.IPV4 else self.ipv6

    def discovery_urls(self, family: AddressFamily) -> List[str]:
        family_config = self.family(family)
        return list(family_config.urls) if family_config.enabled else []

    def build_domain_set(self) -> DomainSet:
        """Parse configured hostnames; a disabled family contributes none."""
        return DomainSet.from_entries(
            self.ipv4.domains if self.ipv4.enabled else (),
            self.ipv6.domains if self.ipv6.enabled else (),
        )

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty when valid)."""
        errors = []
        if self.provider not in SUPPORTED_PROVIDERS:
            errors.append(
                f"Unsupported DNS provider: '{self.provider}'. Supported: {', '.join(SUPPORTED_PROVIDERS)}"
            )
        if self.provider == "esa" and not (self.access_id and self.secret):
            errors.append("An access key id and secret are required when provider is esa")
        if self.provider == "cloudflare" and not self.secret:
            errors.append("An API token (secret) is required when provider is cloudflare")
        if self.ttl is not None and self.ttl <= 0:
            errors.append(f"TTL must be a positive number of seconds, got {self.ttl}")
        if not any(f.enabled and f.domains for f in (self.ipv4, self.ipv6)):
            errors.append("At least one domain is required in an enabled address family")
        try:
            self.build_domain_set()
        except ConfigError as e:
            errors.append(str(e))
        return errors


# =============================================================================
# Loading
# =============================================================================


def _read_config_files(config_files: List[str]) -> Dict[str, Any]:
    """Merge config files in order: later scalars win, domain lists are concatenated."""
    merged: Dict[str, Any] = {}
    for config_file in config_files:
        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {config_file}: {e}") from e

        if data is None:
            logger.warning(f"Config file {config_file} is empty")
            continue
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_file} must contain a mapping")

        for key, value in data.items():
            if key in ("ipv4", "ipv6") and isinstance(value, dict):
                section = merged.setdefault(key, {})
                for sub_key, sub_value in value.items():
                    if sub_key == "domains":
                        section.setdefault("domains", []).extend(parse_list(sub_value))
                    else:
                        section[sub_key] = sub_value
            elif key == "dns" and isinstance(value, dict):
                merged.setdefault("dns", {}).update(value)
            else:
                merged[key] = value
    return merged


def _family_config(
    raw: Any, env: Mapping[str, str], prefix: str, default_urls: List[str]
) -> FamilyConfig:
    section = raw if isinstance(raw, dict) else {}
    enabled = parse_bool(env.get(f"{prefix}_ENABLED", section.get("enabled")), default=True)
    urls = parse_list(env.get(f"{prefix}_URLS") or section.get("urls")) or list(default_urls)
    domains = parse_list(section.get("domains")) or parse_list(env.get(f"{prefix}_DOMAINS"))
    return FamilyConfig(enabled=enabled, urls=tuple(urls), domains=tuple(domains))


def load_config(config_path: str, env: Optional[Mapping[str, str]] = None) -> DDNSConfig:
    """Build a snapshot from the YAML file(s) at config_path and the environment.

    Credentials and TTL from the environment override the file; domain lists
    from the environment are used only when the file lists none.

    Raises:
        ConfigError: if a file cannot be read or a value cannot be parsed
    """
    env = os.environ if env is None else env
    config_files = find_config_files(config_path) if config_path else []
    raw = _read_config_files(config_files)
    dns = raw.get("dns") if isinstance(raw.get("dns"), dict) else {}

    try:
        ttl_value = env.get("DNS_TTL") or raw.get("ttl")
        ttl = parse_int(ttl_value, default=0) or None
    except ValueError as e:
        raise ConfigError(f"Invalid TTL: {e}") from e

    return DDNSConfig(
        provider=str(env.get("DNS_PROVIDER") or dns.get("provider") or "esa").lower().strip(),
        access_id=str(env.get("DNS_ID") or dns.get("id") or "").strip(),
        secret=str(env.get("DNS_SECRET") or dns.get("secret") or "").strip(),
        ttl=ttl,
        ipv4=_family_config(raw.get("ipv4"), env, "IPV4", DEFAULT_IPV4_URLS),
        ipv6=_family_config(raw.get("ipv6"), env, "IPV6", DEFAULT_IPV6_URLS),
        sources=tuple(config_files),
    )

"""Public address discovery through HTTP "what is my IP" services."""

from __future__ import annotations

import ipaddress
import logging
import re
from typing import List, Optional, Sequence

import requests

from ddns_sync.domains import AddressFamily

logger = logging.getLogger(__name__)

DEFAULT_IPV4_URLS = [
    "https://api.ipify.org",
    "https://ipv4.icanhazip.com",
    "https://myip.ipip.net",
]
DEFAULT_IPV6_URLS = [
    "https://api6.ipify.org",
    "https://ipv6.icanhazip.com",
    "https://speed.neu6.edu.cn/getIP.php",
]

IPV4_RE = re.compile(r"(?<![\d.])(?:\d{1,3}\.){3}\d{1,3}(?!\.?\d)")
IPV6_RE = re.compile(r"(?<![\da-fA-F:])(?:[\da-fA-F]{0,4}:){2,7}[\da-fA-F]{0,4}")


def extract_address(text: str, family: AddressFamily) -> str:
    """Return the first valid address of family found in text, or ''."""
    pattern = IPV4_RE if family is AddressFamily.IPV4 else IPV6_RE
    for match in pattern.finditer(text or ""):
        candidate = match.group(0)
        try:
            addr = ipaddress.ip_address(candidate)
        except ValueError:
            continue
        if family is AddressFamily.IPV4 and addr.version == 4:
            return str(addr)
        if family is AddressFamily.IPV6 and addr.version == 6:
            return str(addr)
    return ""


class IPDiscovery:
    """Ask each configured service in turn until one returns an address.

    A family with an empty URL list (or disabled) always reports ''.
    """

    def __init__(
        self,
        ipv4_urls: Optional[Sequence[str]] = None,
        ipv6_urls: Optional[Sequence[str]] = None,
        timeout_seconds: float = 10.0,
    ):
        self._urls = {
            AddressFamily.IPV4: list(ipv4_urls or []),
            AddressFamily.IPV6: list(ipv6_urls or []),
        }
        self._timeout = timeout_seconds
        self._session = requests.Session()

    def urls_for(self, family: AddressFamily) -> List[str]:
        return list(self._urls[family])

    def current(self, family: AddressFamily) -> str:
        urls = self._urls[family]
        if not urls:
            return ""
        for url in urls:
            try:
                response = self._session.get(url, timeout=self._timeout)
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                logger.debug(f"Failed to get {family.label} address from {url}: {e}")
                continue
            address = extract_address(response.text, family)
            if address:
                logger.debug(f"Got {family.label} address {address} from {url}")
                return address
            logger.debug(f"No {family.label} address in response from {url}")

        logger.error(f"Failed to get {family.label} address from all services: {', '.join(urls)}")
        return ""

    def current_ipv4(self) -> str:
        return self.current(AddressFamily.IPV4)

    def current_ipv6(self) -> str:
        return self.current(AddressFamily.IPV6)

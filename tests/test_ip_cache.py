"""Unit tests for IPCache."""

import threading

from ddns_sync.domains import AddressFamily
from ddns_sync.ip_cache import IPCache


class TestIPCacheCheck:
    """Tests for deciding whether a pass can be skipped."""

    def test_empty_cache_is_never_current(self) -> None:
        cache = IPCache(AddressFamily.IPV4)

        assert cache.address == ""
        assert cache.updated_at is None
        assert cache.is_current("203.0.113.5") is False

    def test_same_address_is_current_after_advance(self) -> None:
        cache = IPCache(AddressFamily.IPV4)
        cache.advance("203.0.113.5")

        assert cache.is_current("203.0.113.5") is True
        assert cache.updated_at is not None

    def test_different_address_is_not_current(self) -> None:
        cache = IPCache(AddressFamily.IPV4)
        cache.advance("203.0.113.5")

        assert cache.is_current("203.0.113.9") is False

    def test_empty_address_is_never_current(self) -> None:
        cache = IPCache(AddressFamily.IPV6)
        cache.advance("2001:db8::1")

        assert cache.is_current("") is False

    def test_is_current_does_not_change_address(self) -> None:
        cache = IPCache(AddressFamily.IPV4)
        cache.advance("203.0.113.5")

        cache.is_current("203.0.113.9")

        assert cache.address == "203.0.113.5"


class TestIPCacheForcedCheck:
    """Tests for the forced re-check after repeated unchanged cycles."""

    def test_forces_check_after_threshold(self) -> None:
        cache = IPCache(AddressFamily.IPV4, force_after=3)
        cache.advance("203.0.113.5")

        answers = [cache.is_current("203.0.113.5") for _ in range(4)]

        assert answers == [True, True, True, False]

    def test_keeps_forcing_until_advanced(self) -> None:
        cache = IPCache(AddressFamily.IPV4, force_after=1)
        cache.advance("203.0.113.5")

        assert cache.is_current("203.0.113.5") is True
        assert cache.is_current("203.0.113.5") is False
        assert cache.is_current("203.0.113.5") is False

        cache.advance("203.0.113.5")
        assert cache.is_current("203.0.113.5") is True

    def test_zero_disables_forcing(self) -> None:
        cache = IPCache(AddressFamily.IPV4, force_after=0)
        cache.advance("203.0.113.5")

        assert all(cache.is_current("203.0.113.5") for _ in range(50))


class TestIPCacheWrites:
    def test_reset_forgets_address(self) -> None:
        cache = IPCache(AddressFamily.IPV4)
        cache.advance("203.0.113.5")

        cache.reset()

        assert cache.address == ""
        assert cache.updated_at is None
        assert cache.is_current("203.0.113.5") is False

    def test_concurrent_advance_leaves_one_of_the_values(self) -> None:
        cache = IPCache(AddressFamily.IPV4)
        values = [f"203.0.113.{i}" for i in range(1, 21)]
        threads = [threading.Thread(target=cache.advance, args=(v,)) for v in values]

        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.address in values

"""
Network Addressing Tests
========================
"""

import pytest

from screen_relay import netaddr
from screen_relay.netaddr import (
    build_share_url,
    discover_local_ip,
    generate_token,
    is_private_ipv4,
    pick_address,
)


class TestPrivateRanges:

    @pytest.mark.parametrize("address", ["10.0.0.5", "172.16.0.1", "172.31.255.254", "192.168.1.20"])
    def test_private(self, address):
        assert is_private_ipv4(address)

    @pytest.mark.parametrize("address", ["172.32.0.1", "8.8.8.8", "127.0.0.1", "", None, "not-an-ip", "::1"])
    def test_not_private(self, address):
        assert not is_private_ipv4(address)


class TestPickAddress:

    def test_prefers_192_168(self):
        assert pick_address(["10.1.2.3", "192.168.0.7", "172.20.0.1"]) == "192.168.0.7"

    def test_other_private_ranges(self):
        assert pick_address(["127.0.0.1", "172.20.0.1", "10.1.2.3"]) == "172.20.0.1"

    def test_public_when_no_private(self):
        assert pick_address(["127.0.0.1", "203.0.113.9"]) == "203.0.113.9"

    def test_none_when_only_loopback(self):
        assert pick_address(["127.0.0.1", "127.0.1.1", "0.0.0.0"]) is None
        assert pick_address([]) is None


class TestDiscoverLocalIp:

    def test_private_override_wins(self, monkeypatch):
        monkeypatch.setattr(netaddr, "candidate_addresses", lambda: ["192.168.1.2"])
        assert discover_local_ip("10.0.0.9") == "10.0.0.9"

    def test_public_override_is_ignored(self, monkeypatch):
        monkeypatch.setattr(netaddr, "candidate_addresses", lambda: ["192.168.1.2"])
        assert discover_local_ip("8.8.8.8") == "192.168.1.2"

    def test_falls_back_to_loopback(self, monkeypatch, caplog):
        monkeypatch.setattr(netaddr, "candidate_addresses", lambda: ["127.0.0.1"])
        assert discover_local_ip() == "127.0.0.1"
        assert "falling back to localhost" in caplog.text


class TestShareUrl:

    def test_format(self):
        url = build_share_url("abc", host="192.168.1.2")
        assert url == "http://192.168.1.2:5173/stream?token=abc"

    def test_token_is_quoted(self):
        url = build_share_url("a b/c", scheme="https", port=8443, host="10.0.0.1")
        assert url == "https://10.0.0.1:8443/stream?token=a%20b%2Fc"

    def test_discovers_host(self, monkeypatch):
        monkeypatch.setattr(netaddr, "candidate_addresses", lambda: ["10.4.4.4"])
        assert build_share_url("abc") == "http://10.4.4.4:5173/stream?token=abc"

    def test_generated_tokens_are_unique_and_url_safe(self):
        tokens = {generate_token() for _ in range(50)}
        assert len(tokens) == 50
        assert all(t.replace("-", "").replace("_", "").isalnum() for t in tokens)

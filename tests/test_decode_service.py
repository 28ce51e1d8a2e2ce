import base64
import json

import pytest

from mihomerge.core.errors import SubscriptionError
from mihomerge.services.decode_service import decode
from mihomerge.services.share_links import (
    parse_share_links,
    parse_ss,
    parse_trojan,
    parse_vmess,
    try_decode_base64,
)
from tests.conftest import SUBSCRIPTION_YAML


def b64(text, urlsafe=False, padded=True):
    encoder = base64.urlsafe_b64encode if urlsafe else base64.b64encode
    encoded = encoder(text.encode("utf-8")).decode("ascii")
    return encoded if padded else encoded.rstrip("=")


def vmess_link(**fields):
    body = {"v": "2", "ps": "US-01", "add": "us.example.com", "port": "443", "id": "b831381d-6324-4d53-ad4f-8cda48b30811"}
    body.update(fields)
    return "vmess://" + b64(json.dumps(body))


TROJAN = "trojan://secret@hk.example.com:8443?sni=sni.example.com#HK%2001"
SS = "ss://" + b64("aes-256-gcm:pw", urlsafe=True, padded=False) + "@1.2.3.4:8388#JP"


class TestDecode:
    def test_native_yaml(self):
        document, warnings = decode(SUBSCRIPTION_YAML.encode("utf-8"))

        assert document.proxy_names() == ["HK-01", "JP-01"]
        assert warnings == []

    def test_byte_order_mark_is_ignored(self):
        document, _ = decode(b"\xef\xbb\xbf" + SUBSCRIPTION_YAML.encode("utf-8"))

        assert document.port == 8888

    def test_links_rejected_unless_allowed(self):
        payload = b64("\n".join([TROJAN, SS])).encode("ascii")

        with pytest.raises(SubscriptionError) as excinfo:
            decode(payload, allow_alternate=False, subscription_id="airport")

        assert "disabled" in str(excinfo.value)
        assert "airport" in str(excinfo.value)

    def test_base64_link_list(self):
        payload = b64("\n".join([TROJAN, SS, vmess_link()])).encode("ascii")

        document, warnings = decode(payload, allow_alternate=True)

        assert document.proxy_names() == ["HK 01", "JP", "US-01"]
        assert [p["type"] for p in document.proxies] == ["trojan", "ss", "vmess"]
        assert document.proxy_groups == []
        assert document.rules == []
        assert warnings == []

    def test_plain_link_list(self):
        payload = "\n".join([TROJAN, "", SS]).encode("utf-8")

        document, _ = decode(payload, allow_alternate=True)

        assert document.proxy_names() == ["HK 01", "JP"]

    def test_link_with_colon_space_in_name_is_not_yaml(self):
        payload = "trojan://secret@hk.example.com:443#HK: fast".encode("utf-8")

        document, _ = decode(payload, allow_alternate=True)

        assert document.proxy_names() == ["HK: fast"]
        assert document.extra == {}

    def test_bad_lines_become_warnings(self):
        payload = b64("\n".join([TROJAN, "ss://not-valid"])).encode("ascii")

        document, warnings = decode(payload, allow_alternate=True)

        assert document.proxy_names() == ["HK 01"]
        assert len(warnings) == 1
        assert "line 2" in warnings[0]

    def test_garbage_is_an_error(self):
        with pytest.raises(SubscriptionError):
            decode(b"just some words", allow_alternate=True)

    def test_non_utf8_is_an_error(self):
        with pytest.raises(SubscriptionError):
            decode(b"\xff\xfe\xfa", allow_alternate=True)


class TestShareLinks:
    def test_trojan_with_ws_transport(self):
        proxy = parse_trojan(
            "trojan://secret@example.com:8443?sni=sni.example&alpn=h2,http/1.1"
            "&allowInsecure=1&type=ws&path=%2Fws&host=cdn.example#HK%2001"
        )

        assert proxy == {
            "name": "HK 01",
            "type": "trojan",
            "server": "example.com",
            "port": 8443,
            "password": "secret",
            "sni": "sni.example",
            "alpn": ["h2", "http/1.1"],
            "skip-cert-verify": True,
            "network": "ws",
            "ws-opts": {"path": "/ws", "headers": {"Host": "cdn.example"}},
        }

    def test_trojan_defaults(self):
        proxy = parse_trojan("trojan://pw@example.com")

        assert proxy["port"] == 443
        assert proxy["name"] == "example.com:443"

    def test_trojan_without_password(self):
        with pytest.raises(ValueError):
            parse_trojan("trojan://example.com:443")

    def test_vmess(self):
        proxy = parse_vmess(vmess_link(aid="0", scy="auto", net="ws", path="/v", host="h.example", tls="tls", sni="s.example"))

        assert proxy["name"] == "US-01"
        assert proxy["port"] == 443
        assert proxy["alterId"] == 0
        assert proxy["cipher"] == "auto"
        assert proxy["network"] == "ws"
        assert proxy["ws-opts"] == {"path": "/v", "headers": {"Host": "h.example"}}
        assert proxy["tls"] is True
        assert proxy["servername"] == "s.example"

    def test_vmess_without_uuid(self):
        with pytest.raises(ValueError):
            parse_vmess(vmess_link(id=""))

    def test_vmess_invalid_port(self):
        with pytest.raises(ValueError):
            parse_vmess(vmess_link(port="70000"))

    def test_ss_base64_userinfo_with_plugin(self):
        userinfo = b64("aes-256-gcm:pass", urlsafe=True, padded=False)

        proxy = parse_ss(f"ss://{userinfo}@1.2.3.4:8388/?plugin=obfs-local%3Bobfs%3Dhttp#JP")

        assert proxy == {
            "name": "JP",
            "type": "ss",
            "server": "1.2.3.4",
            "port": 8388,
            "cipher": "aes-256-gcm",
            "password": "pass",
            "plugin": "obfs-local;obfs=http",
        }

    def test_ss_plain_userinfo(self):
        proxy = parse_ss("ss://chacha20-ietf-poly1305:p%40ss@example.com:443")

        assert proxy["cipher"] == "chacha20-ietf-poly1305"
        assert proxy["password"] == "p@ss"
        assert proxy["name"] == "example.com:443"

    def test_ss_legacy_with_ipv6(self):
        proxy = parse_ss("ss://" + b64("aes-128-gcm:pw@[::1]:8388"))

        assert proxy["server"] == "::1"
        assert proxy["port"] == 8388

    def test_ss_bad_port(self):
        with pytest.raises(ValueError):
            parse_ss("ss://aes-128-gcm:pw@example.com:0")

    def test_unknown_schemes_are_ignored(self):
        proxies, warnings = parse_share_links("vless://id@example.com:443\n" + TROJAN)

        assert [p["type"] for p in proxies] == ["trojan"]
        assert warnings == []

    def test_try_decode_base64(self):
        assert try_decode_base64(b64(TROJAN, urlsafe=True, padded=False)) == TROJAN
        assert try_decode_base64(b64("hello world")) is None
        assert try_decode_base64("   ") is None

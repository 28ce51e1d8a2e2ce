# mihomerge/services/share_links.py

import base64
import binascii
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

logger = logging.getLogger(__name__)

SCHEMES = ("trojan://", "vmess://", "ss://")


def _pad(data: str) -> str:
    data = data.strip()
    return data + "=" * (-len(data) % 4)


def b64decode_text(data: str) -> str:
    """Decode standard or URL-safe base64 with or without padding."""
    padded = _pad(data)
    try:
        raw = base64.b64decode(padded, validate=True)
    except binascii.Error:
        raw = base64.urlsafe_b64decode(padded)
    return raw.decode("utf-8")


def looks_like_share_links(text: str) -> bool:
    return any("://" in line for line in (line.strip() for line in text.splitlines()) if line)


def try_decode_base64(raw: str) -> Optional[str]:
    """
    Return the decoded text of a base64-wrapped link list, or None when the
    payload is not base64 or does not decode to anything link-shaped.
    """
    filtered = "".join(raw.split())
    if not filtered:
        return None

    for decoder in (base64.b64decode, base64.urlsafe_b64decode):
        try:
            text = decoder(_pad(filtered)).decode("utf-8")
        except (binascii.Error, ValueError):
            continue
        if looks_like_share_links(text):
            return text
    return None


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _ws_opts(path: Optional[str], host: Optional[str]) -> Dict[str, Any]:
    opts: Dict[str, Any] = {}
    if path:
        opts["path"] = path
    if host:
        opts["headers"] = {"Host": host}
    return opts


def parse_trojan(line: str) -> Dict[str, Any]:
    parts = urlsplit(line)
    server = parts.hostname
    if not server:
        raise ValueError("trojan share link missing host")
    port = parts.port or 443
    password = unquote(parts.username or "")
    if not password:
        raise ValueError("trojan share link missing password")

    proxy: Dict[str, Any] = {
        "name": unquote(parts.fragment) if parts.fragment else f"{server}:{port}",
        "type": "trojan",
        "server": server,
        "port": port,
        "password": password,
    }

    query = {key: values[0] for key, values in parse_qs(parts.query).items()}

    sni = query.get("sni") or query.get("peer")
    if sni:
        proxy["sni"] = sni
    if query.get("alpn"):
        proxy["alpn"] = _split_csv(query["alpn"])
    if query.get("allowInsecure", "").lower() in ("1", "true"):
        proxy["skip-cert-verify"] = True

    transport = query.get("type", "").strip()
    if transport:
        proxy["network"] = transport
        if transport.lower() == "ws":
            opts = _ws_opts(query.get("path"), query.get("host") or query.get("hostHeader"))
            if opts:
                proxy["ws-opts"] = opts

    return proxy


def _port(value: Any) -> int:
    port = int(value)
    if not 0 < port < 65536:
        raise ValueError(f"port out of range: {port}")
    return port


def parse_vmess(line: str) -> Dict[str, Any]:
    try:
        data = json.loads(b64decode_text(line[len("vmess://"):]))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"vmess body is not base64 JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("vmess body is not a JSON object")

    server = data.get("add")
    uuid = data.get("id")
    if not server:
        raise ValueError("vmess share link missing server")
    if not uuid:
        raise ValueError("vmess share link missing uuid")
    try:
        port = _port(data.get("port"))
    except (TypeError, ValueError) as e:
        raise ValueError(f"vmess share link has invalid port: {e}") from e

    proxy: Dict[str, Any] = {
        "name": data.get("ps") or server,
        "type": "vmess",
        "server": server,
        "port": port,
        "uuid": uuid,
    }

    if str(data.get("aid", "")).isdigit():
        proxy["alterId"] = int(data["aid"])

    cipher = data.get("scy") or data.get("cipher")
    if cipher:
        proxy["cipher"] = cipher

    net = str(data.get("net") or "")
    if net:
        proxy["network"] = net
        if net.lower() == "ws":
            opts = _ws_opts(data.get("path"), data.get("host"))
            if opts:
                proxy["ws-opts"] = opts

    if str(data.get("tls", "")).lower() in ("tls", "1"):
        proxy["tls"] = True
    if data.get("sni"):
        proxy["servername"] = data["sni"]
    if data.get("fp"):
        proxy["client-fingerprint"] = data["fp"]
    if data.get("alpn"):
        proxy["alpn"] = _split_csv(str(data["alpn"]))
    if data.get("allowInsecure") in (True, "1", "true"):
        proxy["skip-cert-verify"] = True

    return proxy


def parse_ss(line: str) -> Dict[str, Any]:
    body = line[len("ss://"):]
    body, _, tag = body.partition("#")
    body, _, query = body.partition("?")
    body = body.rstrip("/")

    if "@" in body:
        # SIP002: userinfo may itself be base64
        userinfo, _, server_part = body.rpartition("@")
        userinfo = unquote(userinfo)
        if ":" not in userinfo:
            try:
                userinfo = b64decode_text(userinfo)
            except (binascii.Error, UnicodeDecodeError) as e:
                raise ValueError(f"shadowsocks userinfo is not base64: {e}") from e
        credentials = f"{userinfo}@{server_part}"
    else:
        try:
            credentials = b64decode_text(body)
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError(f"shadowsocks body is not base64: {e}") from e

    method_password, sep, server_part = credentials.rpartition("@")
    if not sep:
        raise ValueError("shadowsocks share link missing host")
    method, sep, password = method_password.partition(":")
    if not sep:
        raise ValueError("shadowsocks share link missing cipher or password")
    server, sep, port = server_part.rpartition(":")
    if not sep or not server:
        raise ValueError("shadowsocks share link missing port")

    server = server.strip("[]")
    port = _port(port)
    proxy: Dict[str, Any] = {
        "name": unquote(tag) if tag else f"{server}:{port}",
        "type": "ss",
        "server": server,
        "port": port,
        "cipher": method,
        "password": password,
    }

    plugin = parse_qs(query).get("plugin")
    if plugin:
        proxy["plugin"] = plugin[0]

    return proxy


PARSERS = {
    "trojan://": parse_trojan,
    "vmess://": parse_vmess,
    "ss://": parse_ss,
}


def parse_share_links(text: str) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Decode one proxy per share-link line.
    Lines with other schemes are ignored; lines that fail to decode are skipped and reported.
    Returns:
        Tuple[List[Dict[str, Any]], List[str]]: The decoded proxies and one warning per skipped line.
    """
    proxies = []
    warnings = []

    for number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        scheme = next((s for s in SCHEMES if line.startswith(s)), None)
        if scheme is None:
            continue
        try:
            proxies.append(PARSERS[scheme](line))
        except ValueError as e:
            message = f"skipped {scheme.rstrip(':/')} link on line {number}: {e}"
            logger.warning(message)
            warnings.append(message)

    return proxies, warnings

from mihomerge.schemas.clash_config import ClashConfig
from mihomerge.services.merge_service import MergeService
from mihomerge.services.overlay_service import OverlayService

merge_service = MergeService()
service = OverlayService(merge_service)


def proxy(name):
    return {"name": name, "type": "http", "server": "example.com", "port": 443}


def base_config():
    return ClashConfig(
        port=7897,
        proxies=[proxy("Old")],
        proxy_groups=[
            {"name": "Proxy", "type": "select", "proxies": ["Auto", "DIRECT", "Old"]},
            {"name": "Auto", "type": "url-test", "url": "http://cp.example/204", "interval": 300, "proxies": ["Old"]},
        ],
        rules=["DOMAIN-SUFFIX,base.example,Proxy", "MATCH,Proxy"],
        extra={"dns": {"enable": False}, "tun": {"enable": True}},
    )


def test_without_base_is_pass_through():
    merged = ClashConfig(rules=["R"])

    assert service.apply_base_config(merged, None) is merged


def test_rules_are_replaced_by_base_rules():
    template = ClashConfig(rules=["T"])
    sub = ClashConfig(rules=["S"], proxies=[proxy("A")])
    base = base_config()

    result = service.apply_base_config(merge_service.merge(template, [sub]), base)

    assert result.rules == base.rules


def test_base_ports_win_where_defined():
    merged = ClashConfig(port=7890, socks_port=7891)

    result = service.apply_base_config(merged, base_config())

    assert result.port == 7897
    assert result.socks_port == 7891


def test_groups_take_base_shape_with_merged_nodes():
    merged = ClashConfig(
        proxies=[proxy("A"), proxy("B")],
        proxy_groups=[{"name": "Merged-only", "type": "select", "proxies": ["A"]}],
    )

    result = service.apply_base_config(merged, base_config())

    assert result.proxy_group_names() == ["Proxy", "Auto"]
    assert result.find_group("Proxy")["proxies"] == ["Auto", "DIRECT", "A", "B"]
    auto = result.find_group("Auto")
    assert auto["proxies"] == ["A", "B"]
    assert auto["type"] == "url-test"
    assert auto["interval"] == 300


def test_merged_proxies_are_kept():
    merged = ClashConfig(proxies=[proxy("A")])

    result = service.apply_base_config(merged, base_config())

    assert result.proxy_names() == ["A"]


def test_base_extra_overrides_and_supplements():
    merged = ClashConfig(extra={"dns": {"enable": True}, "mode": "rule"})

    result = service.apply_base_config(merged, base_config())

    assert result.extra == {"dns": {"enable": False}, "mode": "rule", "tun": {"enable": True}}


def test_base_is_not_mutated():
    base = base_config()

    result = service.apply_base_config(ClashConfig(proxies=[proxy("A")]), base)
    result.find_group("Proxy")["proxies"].append("X")
    result.extra["dns"]["enable"] = True

    assert base.proxy_groups[0]["proxies"] == ["Auto", "DIRECT", "Old"]
    assert base.extra["dns"] == {"enable": False}

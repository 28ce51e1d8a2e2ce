import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from mihomerge.schemas.clash_config import ClashConfig
from mihomerge.schemas.options import MergeOptions
from mihomerge.schemas.state import CustomRule
from mihomerge.services.merge_service import DEFAULT_SELECTOR_NAME

logger = logging.getLogger(__name__)

DIRECT = "DIRECT"

# Developer registries and code hosts routed through the proxy.
# DOMAIN for exact hosts, DOMAIN-SUFFIX for whole zones.
DEV_RULE_TARGETS: List[Tuple[str, str]] = [
    # Git & code hosting
    ("DOMAIN-SUFFIX", "github.com"),
    ("DOMAIN-SUFFIX", "githubusercontent.com"),
    ("DOMAIN-SUFFIX", "gitlab.com"),
    ("DOMAIN-SUFFIX", "bitbucket.org"),
    # Language ecosystems / registries
    ("DOMAIN-SUFFIX", "registry.npmjs.org"),
    ("DOMAIN-SUFFIX", "nodejs.org"),
    ("DOMAIN-SUFFIX", "pypi.org"),
    ("DOMAIN-SUFFIX", "files.pythonhosted.org"),
    ("DOMAIN-SUFFIX", "crates.io"),
    ("DOMAIN-SUFFIX", "static.crates.io"),
    ("DOMAIN-SUFFIX", "rubygems.org"),
    ("DOMAIN-SUFFIX", "golang.org"),
    ("DOMAIN-SUFFIX", "go.dev"),
    ("DOMAIN-SUFFIX", "golang.google.cn"),
    ("DOMAIN-SUFFIX", "rust-lang.org"),
    # Kubernetes
    ("DOMAIN-SUFFIX", "k8s.io"),
    ("DOMAIN-SUFFIX", "dl.k8s.io"),
    ("DOMAIN-SUFFIX", "k3s.io"),
    # Container registries
    ("DOMAIN-SUFFIX", "docker.com"),
    ("DOMAIN-SUFFIX", "docker.io"),
    ("DOMAIN-SUFFIX", "registry-1.docker.io"),
    ("DOMAIN-SUFFIX", "ghcr.io"),
    ("DOMAIN-SUFFIX", "gcr.io"),
    ("DOMAIN-SUFFIX", "pkg.dev"),
    ("DOMAIN-SUFFIX", "quay.io"),
    # Nix
    ("DOMAIN", "cache.nixos.org"),
    # AI APIs
    ("DOMAIN-SUFFIX", "api.openai.com"),
    ("DOMAIN-SUFFIX", "claude.ai"),
]

CLUSTER_DNS_BYPASS = ["+.cluster.local", "*.cluster.local.*"]
DEFAULT_ROUTE_EXCLUDES = ["10.42.0.0/16", "10.43.0.0/16"]


def parse_host_port(value: str) -> Optional[Tuple[str, int]]:
    """Split "host:port" or "[v6]:port"."""
    if value.startswith("["):
        host, sep, port = value[1:].partition("]:")
    else:
        host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        return None
    return host, int(port)


def domain_matches_rule(kind: str, target: str, domain: str) -> bool:
    domain = domain.lower()
    target = target.lower()
    if kind == "DOMAIN":
        return domain == target
    if kind == "DOMAIN-SUFFIX":
        return domain == target or domain.endswith(f".{target}")
    if kind == "DOMAIN-KEYWORD":
        return target in domain
    return False


class RuleService:
    def inject_rules(self, config: ClashConfig, options: MergeOptions) -> Tuple[ClashConfig, List[str]]:
        """
        Prepend quick and developer rules and apply the DNS/TUN conveniences.
        Parameters:
            config (ClashConfig): The merged (and possibly overlaid) document.
            options (MergeOptions): Run options, including the persisted quick rules.
        Returns:
            Tuple[ClashConfig, List[str]]: A new document and the warnings raised on the way.
        """
        out = config.model_copy(deep=True)
        warnings: List[str] = []

        if options.dev_rules:
            via, fell_back = self.resolve_destination(options.dev_rules_via, out)
            if fell_back:
                self._warn(f"dev rules destination '{options.dev_rules_via}' not found; using '{via}'", warnings)
            out.rules = self.build_dev_rules(via) + out.rules

        if options.custom_rules:
            out.rules = self.build_custom_rules(options.custom_rules) + out.rules

        self.apply_external_controller(
            out,
            options.external_controller_host,
            options.external_controller_port,
            options.external_controller_secret,
        )
        self.apply_fake_ip_bypass(out, options.fake_ip_bypass, warnings)
        self.apply_fake_ip_filter_mode(out, options.fake_ip_filter_mode, bool(options.fake_ip_bypass), warnings)
        self.apply_cluster_dns_bypass(out, warnings)
        self.apply_route_excludes(out, options.k8s_cidr_exclude, warnings)

        return out, warnings

    def resolve_destination(self, requested: str, config: ClashConfig) -> Tuple[str, bool]:
        """
        Pick the routing target for generated rules.
        Falls back through the default selector, the first group, the first proxy
        and finally DIRECT. The flag reports whether a fallback was taken.
        """
        group_names = config.proxy_group_names()
        proxy_names = config.proxy_names()

        if requested in group_names or requested in proxy_names:
            return requested, False
        if DEFAULT_SELECTOR_NAME in group_names:
            return DEFAULT_SELECTOR_NAME, True
        if group_names:
            return group_names[0], True
        if proxy_names:
            return proxy_names[0], True
        return DIRECT, True

    def build_dev_rules(self, via: str) -> List[str]:
        return [f"{kind},{target},{via}" for kind, target in DEV_RULE_TARGETS]

    def build_custom_rules(self, rules: Iterable[CustomRule]) -> List[str]:
        return [rule.to_rule() for rule in rules]

    def dev_domains(self) -> List[str]:
        return sorted({target for _, target in DEV_RULE_TARGETS})

    def check_domain(self, domain: str, custom_rules: Iterable[CustomRule]) -> str:
        """Answer "proxy" or "direct" for a domain: quick rules first, then the dev catalog."""
        for rule in custom_rules:
            if domain_matches_rule(rule.kind.directive, rule.domain, domain):
                return "direct" if rule.via.lower() == "direct" else "proxy"

        for kind, target in DEV_RULE_TARGETS:
            if domain_matches_rule(kind, target, domain):
                return "proxy"

        return "direct"

    def apply_fake_ip_bypass(self, config: ClashConfig, patterns: List[str], warnings: List[str]) -> None:
        if not patterns:
            return
        dns = self._dns_block(config, True, "fake-ip bypass patterns", warnings)
        if dns is None:
            return

        self._string_list(dns, "dns", "fake-ip-filter", warnings).extend(patterns)

        current = dns.get("fake-ip-filter-mode")
        if not (isinstance(current, str) and current.lower() == "blacklist"):
            if current:
                self._warn(f"overriding fake-ip-filter-mode '{current}' with 'blacklist' for fake-ip bypass", warnings)
            dns["fake-ip-filter-mode"] = "blacklist"

    def apply_fake_ip_filter_mode(self, config: ClashConfig, mode: Optional[str], bypass_used: bool, warnings: List[str]) -> None:
        if mode is None:
            return
        if mode == "whitelist" and bypass_used:
            self._warn("fake-ip bypass requires blacklist mode; ignoring requested 'whitelist'", warnings)
            return
        dns = self._dns_block(config, True, "fake-ip-filter-mode override", warnings)
        if dns is not None:
            dns["fake-ip-filter-mode"] = mode

    def apply_cluster_dns_bypass(self, config: ClashConfig, warnings: List[str]) -> None:
        # Keep *.svc.cluster.local out of the fake-ip range under tun + dns-hijack
        dns = self._dns_block(config, False, "cluster.local fake-ip bypass", warnings)
        if dns is None:
            return
        if str(dns.get("enhanced-mode", "")).lower() != "fake-ip":
            return
        if str(dns.get("fake-ip-filter-mode") or "blacklist").lower() == "whitelist":
            return

        filters = self._string_list(dns, "dns", "fake-ip-filter", warnings)
        for item in CLUSTER_DNS_BYPASS:
            if item not in filters:
                filters.append(item)
                logger.info(f"Auto-added fake-ip bypass {item}")

    def apply_route_excludes(self, config: ClashConfig, cidrs: List[str], warnings: List[str]) -> None:
        tun = config.extra.get("tun")
        if tun is None and not cidrs:
            return
        if tun is None:
            tun = config.extra["tun"] = {}
        if not isinstance(tun, dict):
            self._warn(f"tun is not a mapping ({tun!r}); skipping route-exclude-address", warnings)
            return

        excludes = self._string_list(tun, "tun", "route-exclude-address", warnings)
        for cidr in DEFAULT_ROUTE_EXCLUDES + list(cidrs):
            if "/" not in cidr:
                self._warn(f"invalid CIDR '{cidr}' for tun route-exclude-address (expected like 10.42.0.0/16)", warnings)
                continue
            if cidr not in excludes:
                excludes.append(cidr)

    def apply_external_controller(self,
                                  config: ClashConfig,
                                  host: Optional[str] = None,
                                  port: Optional[int] = None,
                                  secret: Optional[str] = None) -> None:
        if host is None and port is None and secret is None:
            return

        existing = config.extra.get("external-controller")
        current = parse_host_port(existing) if isinstance(existing, str) else None
        current_host, current_port = current or ("127.0.0.1", 9090)

        host = host or current_host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        config.extra["external-controller"] = f"{host}:{port or current_port}"
        if secret is not None:
            config.extra["secret"] = secret

    def _warn(self, message: str, warnings: List[str]) -> None:
        logger.warning(message)
        warnings.append(message)

    def _dns_block(self, config: ClashConfig, create: bool, purpose: str, warnings: List[str]) -> Optional[Dict[str, Any]]:
        dns = config.extra.get("dns")
        if dns is None:
            if not create:
                return None
            dns = config.extra["dns"] = {}
        if not isinstance(dns, dict):
            self._warn(f"dns is not a mapping ({dns!r}); skipping {purpose}", warnings)
            return None
        return dns

    def _string_list(self, block: Dict[str, Any], block_name: str, key: str, warnings: List[str]) -> List[Any]:
        value = block.get(key)
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            self._warn(f"{block_name}.{key} was a single value; converted to a list", warnings)
            value = block[key] = [value]
            return value
        if value is not None:
            self._warn(f"{block_name}.{key} is not a list ({value!r}); replacing it", warnings)
        value = block[key] = []
        return value

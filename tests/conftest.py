import pytest

from mihomerge.repos.cache_repo import CacheRepo
from mihomerge.repos.document_repo import DocumentRepo
from mihomerge.repos.output_repo import OutputRepo
from mihomerge.repos.state_repo import StateRepo

TEMPLATE_YAML = """\
mixed-port: 7897
mode: rule
log-level: info
external-controller: 127.0.0.1:9097
port: 7890
socks-port: 7891
dns:
  enable: true
  enhanced-mode: fake-ip
  fake-ip-filter:
    - '*.lan'
proxy-groups:
  - name: 🚀 节点选择
    type: select
    proxies: []
  - name: Auto
    type: url-test
    url: http://www.gstatic.com/generate_204
    interval: 300
    proxies: []
rules:
  - GEOIP,CN,DIRECT
  - MATCH,🚀 节点选择
"""

SUBSCRIPTION_YAML = """\
port: 8888
mode: global
proxies:
  - {name: HK-01, type: ss, server: hk.example.com, port: 8388, cipher: aes-128-gcm, password: pw}
  - {name: JP-01, type: trojan, server: jp.example.com, port: 443, password: pw}
proxy-groups:
  - name: Auto
    type: url-test
    proxies: [HK-01, JP-01]
  - name: Streaming
    type: select
    proxies: [JP-01]
rules:
  - DOMAIN-SUFFIX,netflix.com,Streaming
"""


@pytest.fixture
def data_dir(tmp_path):
    (tmp_path / "templates").mkdir()
    (tmp_path / "templates" / "template.yaml").write_text(TEMPLATE_YAML, encoding="utf-8")
    return tmp_path


@pytest.fixture
def subscription_file(tmp_path):
    path = tmp_path / "provider.yaml"
    path.write_text(SUBSCRIPTION_YAML, encoding="utf-8")
    return path


@pytest.fixture
def state_repo(data_dir):
    return StateRepo(str(data_dir))


@pytest.fixture
def document_repo(data_dir):
    return DocumentRepo(str(data_dir))


@pytest.fixture
def output_repo(data_dir):
    return OutputRepo(str(data_dir / "output" / "config.yaml"))


@pytest.fixture
def cache_repo(tmp_path):
    return CacheRepo(str(tmp_path / "cache"))

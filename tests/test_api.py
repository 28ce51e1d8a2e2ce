import pytest
import yaml
from fastapi.testclient import TestClient

from main import app
from mihomerge.api.deps import get_profile_service, get_state_repo
from mihomerge.core.config import settings
from mihomerge.schemas.state import AppState
from mihomerge.services.profile_service import ProfileService


@pytest.fixture
def client(monkeypatch, state_repo, document_repo, output_repo):
    monkeypatch.setattr(settings, "USE_API_KEY", False)
    monkeypatch.setattr(settings, "DEV_RULES", False)
    app.dependency_overrides[get_state_repo] = lambda: state_repo
    app.dependency_overrides[get_profile_service] = lambda: ProfileService(state_repo, document_repo, output_repo)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_profile_yaml(client, subscription_file):
    response = client.get("/api/v2/profiles/", params={"source": str(subscription_file)})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/yaml")
    assert response.headers["x-merge-warnings"] == "0"
    document = yaml.safe_load(response.text)
    assert [p["name"] for p in document["proxies"]] == ["HK-01", "JP-01"]
    assert document["port"] == 7890


def test_profile_options_are_applied(client, subscription_file):
    response = client.get("/api/v2/profiles/", params={
        "source": str(subscription_file),
        "fake_ip_bypass": ["+.corp.example", "+.internal.example"],
        "external_controller_port": 9999,
    })

    document = yaml.safe_load(response.text)
    assert "+.internal.example" in document["dns"]["fake-ip-filter"]
    assert document["external-controller"] == "127.0.0.1:9999"


def test_profile_without_sources(client):
    response = client.get("/api/v2/profiles/")

    assert response.status_code == 400


def test_invalid_option(client, subscription_file):
    response = client.get("/api/v2/profiles/", params={"source": str(subscription_file), "fake_ip_filter_mode": "greylist"})

    assert response.status_code == 422


def test_summary_reports_warnings(client, subscription_file, tmp_path):
    response = client.get("/api/v2/profiles/summary", params={"source": [str(subscription_file), str(tmp_path / "absent.yaml")]})

    body = response.json()
    assert response.status_code == 200
    assert body["proxies"] == 2
    assert len(body["warnings"]) == 1
    assert body["dev_rules"]["count"] == 0
    assert body["output_path"].endswith("config.yaml")


def test_custom_rule_lifecycle(client, state_repo):
    added = client.post("/api/v2/rules/custom", json={"domain": "example.com", "via": "direct"})
    repeated = client.post("/api/v2/rules/custom", json={"domain": "example.com", "via": "DIRECT"})

    assert added.json() == {"status": "added", "rules": ["DOMAIN-SUFFIX,example.com,DIRECT"]}
    assert repeated.json()["status"] == "exists"
    assert client.get("/api/v2/rules/custom").json() == ["DOMAIN-SUFFIX,example.com,DIRECT"]
    assert client.get("/api/v2/rules/check", params={"domain": "www.example.com"}).json() == {
        "domain": "www.example.com",
        "route": "direct",
    }

    removed = client.delete("/api/v2/rules/custom", params={"domain": "example.com"})

    assert removed.json() == {"removed": 1}
    assert state_repo.load_state().custom_rules == []


def test_empty_custom_rule_is_rejected(client):
    response = client.post("/api/v2/rules/custom", json={"domain": " ", "via": "Proxy"})

    assert response.status_code == 422


def test_check_dev_domain(client):
    response = client.get("/api/v2/rules/check", params={"domain": "files.pythonhosted.org"})

    assert response.json()["route"] == "proxy"


def test_dev_domains(client):
    domains = client.get("/api/v2/rules/dev").json()

    assert "github.com" in domains
    assert domains == sorted(domains)


def test_last_url(client, state_repo):
    state_repo.save_state(AppState(last_subscription_url="https://a.example.com/sub"))

    assert client.get("/api/v2/state/last-url").json() == {"last_subscription_url": "https://a.example.com/sub"}
    assert client.delete("/api/v2/state/last-url").json() == {"status": "cleared"}
    assert state_repo.load_state().last_subscription_url is None


def test_api_key_required(client, monkeypatch):
    monkeypatch.setattr(settings, "USE_API_KEY", True)
    monkeypatch.setattr(settings, "API_KEY", "secret")

    assert client.get("/api/v2/rules/dev").status_code == 401
    assert client.get("/api/v2/rules/dev", params={"api_key": "secret"}).status_code == 200

"""HTTP surface of the registry, exercised through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from resilient_mesh.registry.api import create_registry_app


class TestRegistryAPI:
    @pytest.fixture
    def client(self, registry):
        app = create_registry_app(registry)
        with TestClient(app) as test_client:
            yield test_client

    def register(self, client, service="orders", instance_id="o-1", port=8080):
        return client.post(
            f"/register/{service}",
            json={"instanceId": instance_id, "host": "10.0.0.1", "port": port},
        )

    def test_register_returns_204(self, client):
        response = self.register(client)
        assert response.status_code == 204

        listed = client.get("/instances/orders").json()["instances"]
        assert [i["instanceId"] for i in listed] == ["o-1"]
        assert listed[0]["url"] == "http://10.0.0.1:8080"

    @pytest.mark.parametrize(
        "body",
        [
            {"host": "10.0.0.1", "port": 8080},
            {"instanceId": "", "host": "10.0.0.1", "port": 8080},
            {"instanceId": "o-1", "host": "10.0.0.1", "port": 0},
            {"instanceId": "o-1", "host": "10.0.0.1", "port": "not-a-port"},
            {"instanceId": "o-1", "host": "10.0.0.1", "port": 8080.9},
            {"instanceId": "o-1", "host": "10.0.0.1", "port": 8080, "metadata": {"weight": 3}},
            ["not", "an", "object"],
        ],
    )
    def test_register_rejects_malformed_body(self, client, body):
        response = client.post("/register/orders", json=body)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_register_rejects_non_json(self, client):
        response = client.post(
            "/register/orders", content=b"not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    def test_renew(self, client, clock):
        self.register(client)
        clock.advance(30)

        response = client.put("/renew/orders/o-1")
        assert response.status_code == 200
        assert response.json()["lastRenewalAt"] == 30

    def test_renew_unknown_returns_404(self, client):
        assert client.put("/renew/orders/ghost").status_code == 404

    def test_renew_expired_returns_404(self, client, clock):
        self.register(client)
        clock.advance(91)
        assert client.put("/renew/orders/o-1").status_code == 404

    def test_deregister_always_200(self, client):
        self.register(client)

        response = client.delete("/deregister/orders/o-1")
        assert response.status_code == 200
        assert response.json()["removed"] is True

        response = client.delete("/deregister/orders/o-1")
        assert response.status_code == 200
        assert response.json()["removed"] is False

    def test_unknown_service_returns_404(self, client):
        assert client.get("/instances/ghost").status_code == 404

    def test_known_service_with_expired_instances_returns_empty_list(self, client, clock):
        self.register(client)
        clock.advance(91)

        response = client.get("/instances/orders")
        assert response.status_code == 200
        assert response.json() == {"instances": []}

    def test_list_all(self, client):
        self.register(client, "orders", "o-1")
        self.register(client, "billing", "b-1", port=9090)

        services = client.get("/instances").json()["services"]
        assert sorted(services) == ["billing", "orders"]

    def test_health(self, client):
        self.register(client)
        assert client.get("/health").json() == {"status": "UP", "instanceCount": 1}

    def test_metrics(self, client):
        self.register(client)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "mesh_registry_operations_total" in response.text

    def test_register_with_metadata_and_urls(self, client):
        response = client.post(
            "/register/orders",
            json={
                "instanceId": "o-1",
                "host": "10.0.0.1",
                "port": 8080,
                "metadata": {"zone": "eu-1"},
                "healthCheckUrl": "http://10.0.0.1:8080/healthz",
            },
        )
        assert response.status_code == 204

        [instance] = client.get("/instances/orders").json()["instances"]
        assert instance["metadata"] == {"zone": "eu-1"}
        assert instance["healthCheckUrl"] == "http://10.0.0.1:8080/healthz"
        assert instance["statusPageUrl"] == "http://10.0.0.1:8080/info"

    def test_status_down_hides_instance_until_up(self, client):
        self.register(client)

        response = client.put("/status/orders/o-1", json={"status": "DOWN"})
        assert response.status_code == 200
        assert response.json()["status"] == "DOWN"
        assert client.get("/instances/orders").json() == {"instances": []}

        client.put("/status/orders/o-1", json={"status": "UP"})
        assert len(client.get("/instances/orders").json()["instances"]) == 1

    def test_status_unknown_instance_returns_404(self, client):
        assert client.put("/status/orders/ghost", json={"status": "DOWN"}).status_code == 404

    @pytest.mark.parametrize("body", [{"status": "SLEEPING"}, {}, ["DOWN"]])
    def test_status_rejects_malformed_body(self, client, body):
        self.register(client)

        response = client.put("/status/orders/o-1", json=body)
        assert response.status_code == 400
        assert "error" in response.json()

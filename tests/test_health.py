def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status_code"] == 200
    assert payload["status"] == "success"
    assert payload["message"] == "Service is healthy"

    data = payload["data"]
    assert data["status"] == "ok"
    assert data["service"] == "Link Preview API"
    assert data["environment"] == "local"
    assert data["uptime"] >= 0
    assert data["timestamp"].endswith("+00:00")


def test_root_info(client):
    response = client.get("/")
    assert response.status_code == 200
    payload = response.json()
    assert payload["app_name"] == "Link Preview API"
    assert payload["version"] == "1.0.0"
    assert payload["docs_url"] == "/docs"
    assert payload["preview_url"] == "/preview"

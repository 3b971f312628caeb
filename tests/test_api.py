# 2. Third-Party Libraries
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlmodel import Session

# 3. Application Layers
from sales_dw.api import routes
from sales_dw.api.main import app
from sales_dw.core.exceptions import ResolutionError

client = TestClient(app)
AUTH = ("admin", "password123")


@pytest.fixture(name="warehouse_client")
def warehouse_client_fixture(scenario_warehouse: dict[str, int], warehouse_engine: Engine):
    def _session():
        with Session(warehouse_engine) as session:
            yield session

    app.dependency_overrides[routes.get_warehouse_session] = _session
    yield client
    app.dependency_overrides.clear()


def test_read_main():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to the Sales Data Warehouse API"}

def test_pipeline_run_no_auth():
    """Running the pipeline must be protected."""
    response = client.post("/v1/pipeline/run")
    assert response.status_code == 401

def test_pipeline_run_success(monkeypatch):
    monkeypatch.setattr(routes, "run_pipeline", lambda config: {"salestxn": 3, "product_facts": 20})
    response = client.post("/v1/pipeline/run", auth=AUTH)

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert "product_facts=20" in response.json()["message"]

def test_pipeline_run_failure_is_reported(monkeypatch):
    def _fail(config):
        raise ResolutionError("product_total", "product_dim", ["Aspirin"])

    monkeypatch.setattr(routes, "run_pipeline", _fail)
    response = client.post("/v1/pipeline/run", auth=AUTH)

    assert response.status_code == 500
    body = response.json()["detail"]
    assert body["status"] == "error"
    assert body["error"] == "ResolutionError"
    assert "Aspirin" in body["message"]

def test_quarterly_sales_endpoint(warehouse_client: TestClient):
    response = warehouse_client.get("/v1/reports/quarterly-sales", auth=AUTH)

    assert response.status_code == 200
    assert [row["timeID"] for row in response.json()] == ["2020-Q1", "2020-Q2", "2021-Q1"]

def test_top_reps_endpoint(warehouse_client: TestClient):
    response = warehouse_client.get("/v1/reports/top-reps", params={"n": 1}, auth=AUTH)

    assert response.status_code == 200
    assert response.json()[0]["name"] == "Lynette McRowe"
    assert response.json()[0]["totalSold"] == 200

def test_top_products_rejects_non_positive_n(warehouse_client: TestClient):
    response = warehouse_client.get("/v1/reports/top-products", params={"n": 0}, auth=AUTH)
    assert response.status_code == 400

"""
API endpoint tests
"""

import pytest
from fastapi.testclient import TestClient
from api.main import app
from api.dependencies import get_repository
from core.exceptions import UpsertError
from ingestion.loaders.memory_repository import InMemoryProductRepository
from schemas.product import ProductRecord


class RejectAllRepository(InMemoryProductRepository):
    async def upsert_by_key(self, key, record):
        raise UpsertError(f"Upsert failed for product_id {key}")


@pytest.fixture
def repository():
    return InMemoryProductRepository()


@pytest.fixture
def client(repository):
    """Create test client with repository override"""
    app.dependency_overrides[get_repository] = lambda: repository

    # no context manager: keeps startup (and the scheduler) out of the tests
    yield TestClient(app)

    app.dependency_overrides.clear()


def upload(client, content, file_name="products.csv", content_type="text/csv", path="/upload"):
    if isinstance(content, str):
        content = content.encode("utf-8")
    return client.post(path, files={"file": (file_name, content, content_type)})


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["upload"] == "/upload"


def test_upload_success(client, repository, sample_csv):
    response = upload(client, sample_csv)

    assert response.status_code == 200
    assert response.headers["X-Request-ID"].startswith("req_")
    data = response.json()

    assert data["success"] is True
    assert data["request_id"] == response.headers["X-Request-ID"]
    assert data["records_processed"] == 10
    assert data["records_success"] == 10
    assert data["records_error"] == 0
    assert data["column_mapping"]["productName"] == "product_name"
    assert data["quality_report"]["completeness"] == 100
    assert data["statistics"]["final_records"] == 10
    assert "Column mapping applied" in data["statistics"]["processing_steps"]

    assert len(repository.products) == 10
    assert repository.jobs[data["job_id"]].status.value == "completed"


@pytest.mark.parametrize("file_name,content_type", [
    ("products.xlsx", "text/csv"),
    ("products.csv", "image/png"),
])
def test_upload_rejects_file_type(client, sample_csv, file_name, content_type):
    response = upload(client, sample_csv, file_name=file_name, content_type=content_type)

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Invalid file type. Please upload a CSV file.",
        "details": [],
    }


def test_upload_rejects_empty_file(client):
    response = upload(client, b"")

    assert response.status_code == 400
    assert response.json()["error"] == "Uploaded file is empty"


def test_upload_rejects_file_without_rows(client, repository):
    response = upload(client, "product_id,product_name,discounted_price,actual_price\n")

    assert response.status_code == 400
    assert response.json()["error"] == "No data found in the uploaded file"
    assert repository.jobs == {}


def test_upload_rejects_unreadable_file(client):
    response = upload(client, b"\xff\xfe\xfa\xfb")

    assert response.status_code == 400
    assert response.json()["error"] == "Could not parse the uploaded file"


def test_upload_load_failure_returns_500(sample_csv):
    app.dependency_overrides[get_repository] = lambda: RejectAllRepository()
    try:
        response = upload(TestClient(app), sample_csv)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Failed to load data into database"
    assert len(data["details"]) == 10
    assert data["details"][0].startswith("Product P001")


def test_validate_does_not_load(client, repository, sample_csv):
    response = upload(client, sample_csv, path="/upload/validate")

    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is True
    assert data["record_count"] == 10
    assert data["column_count"] == 7
    assert data["detected_columns"]["rating"] == "avg_rating"
    assert len(data["preview"]) == 5
    assert data["recommendations"] == ["File looks good! Ready for processing."]

    assert repository.products == {}
    assert repository.jobs == {}


def test_validate_recommends_missing_columns(client):
    response = upload(client, "product_id,price\nP1,10\nP1,12\n", path="/upload/validate")

    recommendations = response.json()["recommendations"]
    assert recommendations[0] == "Consider adding these important columns: category, rating"
    assert "Found 1 duplicate records - these will be automatically handled" in recommendations


def test_jobs_endpoints(client, sample_csv):
    job_id = upload(client, sample_csv).json()["job_id"]

    listing = client.get("/jobs?limit=5")
    assert listing.status_code == 200
    assert listing.json()["count"] == 1
    assert listing.json()["jobs"][0]["id"] == job_id

    job = client.get(f"/jobs/{job_id}")
    assert job.status_code == 200
    assert job.json()["status"] == "completed"
    assert job.json()["records_processed"] == 10

    assert client.get("/jobs/job_missing").status_code == 404


def test_health_healthy(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["integrity"]["is_valid"] is True


def test_health_degraded_on_integrity_issues(client, repository):
    repository.products["BAD"] = ProductRecord.model_construct(
        product_id="BAD", product_name="Broken", category="Home",
        discounted_price=100.0, actual_price=200.0, discount_percentage=50.0, rating=9.0,
    )

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["integrity"]["issues"] == ["1 products have invalid ratings"]


def test_health_unhealthy_without_database(client, repository):
    async def ping():
        return False
    repository.ping = ping

    data = client.get("/health").json()

    assert data["status"] == "unhealthy"
    assert data["integrity"] is None


def test_stats(client, sample_csv):
    upload(client, sample_csv)

    response = client.get("/stats")

    assert response.status_code == 200
    data = response.json()
    assert data["database"]["total_products"] == 10
    assert data["database"]["total_categories"] == 3
    assert data["database"]["recent_uploads"] == 1
    assert data["category_insights"][0]["category"] == "Electronics"
    assert len(data["recent_jobs"]) == 1

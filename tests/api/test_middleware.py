"""
Tests for the CRUD counting and request logging middleware.
"""

from unittest.mock import AsyncMock

import pytest
import structlog
from bson import ObjectId

from api.crud_stats import CrudStatsService
from api.main import app
from api.middleware import classify_method, is_success
from api.models import AuthorResponse, CrudKind
from tests.conftest import stats_counters

AUTHOR_ID = str(ObjectId())


@pytest.fixture
def sample_author():
    return AuthorResponse(id=AUTHOR_ID, name="Ursula K. Le Guin")


class TestClassification:

    @pytest.mark.parametrize("method,kind", [
        ("GET", CrudKind.READ),
        ("POST", CrudKind.CREATE),
        ("PUT", CrudKind.UPDATE),
        ("PATCH", CrudKind.UPDATE),
        ("DELETE", CrudKind.DELETE),
        ("get", CrudKind.READ),
    ])
    def test_methods_map_to_kinds(self, method, kind):
        assert classify_method(method) == kind

    @pytest.mark.parametrize("method", ["HEAD", "OPTIONS", "TRACE"])
    def test_other_methods_are_not_counted(self, method):
        assert classify_method(method) is None

    @pytest.mark.parametrize("status_code,expected", [
        (200, True), (201, True), (204, True), (299, True),
        (199, False), (301, False), (400, False), (404, False), (422, False), (500, False),
    ])
    def test_success_means_2xx(self, status_code, expected):
        assert is_success(status_code) is expected


class TestCounting:
    """Each request adds exactly one attempt to its kind."""

    def test_successful_read(self, client, mock_db_service, stats_collection, sample_author):
        mock_db_service.get_authors.return_value = [sample_author]

        response = client.get("/api/v1/authors")

        assert response.status_code == 200
        # seeded read (1/1) plus this request
        assert stats_counters(stats_collection)["read"] == {"total": 2, "successful": 2}

    def test_failed_read(self, client, mock_db_service, stats_collection):
        mock_db_service.get_author_by_id.return_value = None

        response = client.get(f"/api/v1/authors/{AUTHOR_ID}")

        assert response.status_code == 404
        assert stats_counters(stats_collection)["read"] == {"total": 2, "successful": 1}

    def test_successful_create(self, client, mock_db_service, stats_collection, sample_author):
        mock_db_service.create_author.return_value = sample_author

        response = client.post("/api/v1/authors", json={"name": "Ursula K. Le Guin"})

        assert response.status_code == 201
        assert stats_counters(stats_collection)["create"] == {"total": 1, "successful": 1}

    def test_invalid_create_counts_attempt_only(self, client, stats_collection):
        response = client.post("/api/v1/authors", json={})

        assert response.status_code == 422
        assert stats_counters(stats_collection)["create"] == {"total": 1, "successful": 0}

    def test_update_not_found(self, client, mock_db_service, stats_collection):
        mock_db_service.update_author.return_value = None

        response = client.put(f"/api/v1/authors/{AUTHOR_ID}", json={"name": "New"})

        assert response.status_code == 404
        assert stats_counters(stats_collection)["update"] == {"total": 1, "successful": 0}

    def test_patch_counts_as_update(self, client, stats_collection):
        response = client.patch(f"/api/v1/authors/{AUTHOR_ID}", json={"name": "New"})

        assert response.status_code == 405
        assert stats_counters(stats_collection)["update"] == {"total": 1, "successful": 0}

    def test_successful_delete(self, client, mock_db_service, stats_collection):
        mock_db_service.delete_author.return_value = True

        response = client.delete(f"/api/v1/authors/{AUTHOR_ID}")

        assert response.status_code == 204
        assert stats_counters(stats_collection)["delete"] == {"total": 1, "successful": 1}

    def test_sequence_of_requests(self, client, mock_db_service, stats_collection, sample_author):
        mock_db_service.get_authors.return_value = [sample_author]
        mock_db_service.get_author_by_id.return_value = None
        mock_db_service.create_author.return_value = sample_author

        for _ in range(3):
            client.get("/api/v1/authors")
        client.get(f"/api/v1/authors/{AUTHOR_ID}")
        client.post("/api/v1/authors", json={"name": "A"})
        client.post("/api/v1/authors", json={"name": ""})

        counters = stats_counters(stats_collection)
        assert counters["read"] == {"total": 5, "successful": 4}
        assert counters["create"] == {"total": 2, "successful": 1}
        for counter in counters.values():
            assert counter["successful"] <= counter["total"]

    def test_unhandled_exception_counts_as_failure(self, client, mock_db_service, stats_collection):
        mock_db_service.get_authors.side_effect = RuntimeError("boom")

        response = client.get("/api/v1/authors")

        assert response.status_code == 500
        assert stats_counters(stats_collection)["read"] == {"total": 2, "successful": 1}

    def test_excluded_paths_are_not_counted(self, client, mock_db_service, stats_collection):
        mock_db_service.health_check.return_value = {"status": "healthy"}

        client.get("/health")
        client.get("/openapi.json")

        assert stats_counters(stats_collection) == {}

    def test_head_is_not_counted(self, client, stats_collection):
        client.head("/api/v1/authors")
        assert stats_counters(stats_collection) == {}


class TestStatsFailuresDoNotAffectResponses:

    def test_store_outage(self, client, mock_db_service, failing_stats_collection, sample_author):
        app.state.crud_stats = CrudStatsService(failing_stats_collection)
        mock_db_service.get_authors.return_value = [sample_author]

        response = client.get("/api/v1/authors")

        assert response.status_code == 200
        assert response.json()[0]["name"] == "Ursula K. Le Guin"

    def test_service_raising(self, client, mock_db_service, sample_author):
        broken = AsyncMock()
        broken.increment.side_effect = RuntimeError("unexpected")
        app.state.crud_stats = broken
        mock_db_service.create_author.return_value = sample_author

        response = client.post("/api/v1/authors", json={"name": "Ursula K. Le Guin"})

        assert response.status_code == 201
        broken.increment.assert_awaited_once_with(CrudKind.CREATE, True)

    def test_service_not_configured(self, client, mock_db_service, sample_author):
        app.state.crud_stats = None
        mock_db_service.get_authors.return_value = [sample_author]

        response = client.get("/api/v1/authors")

        assert response.status_code == 200


def test_request_id_header(client, mock_db_service):
    mock_db_service.get_authors.return_value = []

    response = client.get("/api/v1/authors", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


def test_request_id_generated(client, mock_db_service):
    mock_db_service.get_authors.return_value = []

    response = client.get("/api/v1/authors")

    assert len(response.headers["X-Request-ID"]) == 32


def test_request_id_bound_while_handling(client, mock_db_service):
    seen = {}

    def capture_context():
        seen.update(structlog.contextvars.get_contextvars())
        return []

    mock_db_service.get_authors.side_effect = capture_context

    client.get("/api/v1/authors", headers={"X-Request-ID": "req-456"})

    assert seen["request_id"] == "req-456"

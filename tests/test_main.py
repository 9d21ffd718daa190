"""Tests for application startup wiring."""

from collections.abc import Iterator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from shlokayug.config import get_settings
from shlokayug.courses.service import InMemoryCourseService
from shlokayug.main import create_app
from shlokayug.progress.repository import InMemoryProgressRepository


@pytest.fixture
def cassandra_down() -> Iterator[None]:
    """Redis and Cassandra both unreachable at startup."""
    with (
        patch("shlokayug.main.init_redis", AsyncMock(side_effect=ConnectionError("redis down"))),
        patch(
            "shlokayug.main.init_async_cassandra",
            AsyncMock(side_effect=ConnectionError("cassandra down")),
        ),
        patch("shlokayug.main.shutdown_redis", AsyncMock()),
        patch("shlokayug.main.shutdown_async_cassandra", AsyncMock()),
    ):
        yield


def _settings(in_memory: bool):
    return get_settings().model_copy(update={"progress_in_memory_store": in_memory})


class TestStartupWithoutCassandra:
    def test_progress_routes_unavailable_by_default(
        self, cassandra_down, auth_headers
    ) -> None:
        # Arrange
        with patch("shlokayug.main.get_settings", return_value=_settings(False)):
            app = create_app()

            # Act
            with TestClient(app) as client:
                progress = client.get("/v1/progress/analytics", headers=auth_headers)
                ready = client.get("/health/ready")

        # Assert
        assert app.state.progress_service is None
        assert app.state.course_service is None
        assert progress.status_code == 503
        assert ready.status_code == 503

    def test_in_memory_stores_when_allowed(self, cassandra_down, auth_headers) -> None:
        # Arrange
        with patch("shlokayug.main.get_settings", return_value=_settings(True)):
            app = create_app()

            # Act
            with TestClient(app) as client:
                progress = client.get("/v1/progress/analytics", headers=auth_headers)
                ready = client.get("/health/ready")

        # Assert
        assert isinstance(app.state.course_service, InMemoryCourseService)
        assert isinstance(app.state.progress_service.repository, InMemoryProgressRepository)
        assert progress.status_code == 200
        assert ready.status_code == 200
        assert ready.json()["storage"] == "memory"

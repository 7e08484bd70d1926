"""
Tests for main application
"""
import pytest
from httpx import AsyncClient

from auditflow.adapters.notifier import DatabaseNotificationPublisher, InMemoryNotificationPublisher
from auditflow.adapters.scheduler import CeleryReminderScheduler, InMemoryReminderScheduler
from auditflow.core.config import settings
from auditflow.main import build_notifier, build_scheduler

from conftest import actor_headers


class TestHealthCheck:
    """Tests for health check endpoint"""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test health check returns healthy status"""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()

        assert data["status"] == "healthy"
        assert data["app"] == settings.APP_NAME


class TestAppConfiguration:
    """Tests for application configuration"""

    @pytest.mark.asyncio
    async def test_cors_headers(self, client: AsyncClient):
        """Test CORS preflight is answered for the configured origin"""
        response = await client.options(
            "/api/audits",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            }
        )

        assert response.headers.get("access-control-allow-origin") == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_api_routes_mounted(self, client: AsyncClient, auditor):
        """Test that API routes are properly mounted"""
        response = await client.get("/api/templates", headers=actor_headers(auditor))
        assert response.status_code == 200

        response = await client.get("/api/nonexistent", headers=actor_headers(auditor))
        assert response.status_code in [404, 405]


class TestCollaboratorSelection:
    """Tests for backend selection from settings"""

    def test_memory_backends(self, monkeypatch):
        monkeypatch.setattr(settings, "SCHEDULER_BACKEND", "memory")
        monkeypatch.setattr(settings, "NOTIFIER_BACKEND", "memory")

        assert isinstance(build_scheduler(), InMemoryReminderScheduler)
        assert isinstance(build_notifier(), InMemoryNotificationPublisher)

    def test_durable_backends(self, monkeypatch):
        monkeypatch.setattr(settings, "SCHEDULER_BACKEND", "celery")
        monkeypatch.setattr(settings, "NOTIFIER_BACKEND", "database")

        assert isinstance(build_scheduler(), CeleryReminderScheduler)
        assert isinstance(build_notifier(), DatabaseNotificationPublisher)

import json
from unittest.mock import MagicMock

import pytest
from prometheus_client import CollectorRegistry

from api.middleware.error_handling import unhandled_error_handler
from core.monitoring.prometheus_metrics import OrderPipelineMetrics


def _request(metrics=None):
    request = MagicMock()
    request.app.state.metrics = metrics
    request.url.path = "/api/orders/execute"
    request.method = "POST"
    return request


class TestUnhandledErrorHandler:
    @pytest.mark.asyncio
    async def test_returns_500_and_counts_error(self):
        metrics = OrderPipelineMetrics(registry=CollectorRegistry())

        response = await unhandled_error_handler(_request(metrics), RuntimeError("database exploded"))

        assert response.status_code == 500
        body = json.loads(response.body)
        assert body["error"] == "Internal server error"
        assert body["message"] == "database exploded"
        assert metrics.registry.get_sample_value(
            "order_engine_errors_total", {"component": "api", "error_type": "RuntimeError"}
        ) == 1

    @pytest.mark.asyncio
    async def test_without_metrics(self):
        response = await unhandled_error_handler(_request(), KeyError("missing"))
        assert response.status_code == 500

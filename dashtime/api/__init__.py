"""HTTP surface of the dashtime time server."""

from dashtime.api.app import create_app
from dashtime.api.metrics import TrueTimeMetrics
from dashtime.api.time_router import create_time_router

__all__ = ["TrueTimeMetrics", "create_app", "create_time_router"]

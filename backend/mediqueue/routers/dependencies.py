"""
Shared request dependencies.
"""

from starlette.requests import HTTPConnection

from ..services.queue_service import QueueService


def get_queue_service(connection: HTTPConnection) -> QueueService:
    """The application's queue service, created during startup."""
    return connection.app.state.queue_service

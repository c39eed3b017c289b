"""Python client for the Taskboard API: REST calls, realtime socket, state store and view-models."""
from taskboard_client.api import TaskboardAPI, APIClientError
from taskboard_client.realtime import RealtimeConnection, RealtimeAuthError
from taskboard_client.session import TaskboardSession
from taskboard_client.store import ClientStore, UpdateCursor
from taskboard_client.views import DashboardView, ProjectBoardView, TaskDetailView

__all__ = [
    "TaskboardAPI", "APIClientError",
    "RealtimeConnection", "RealtimeAuthError",
    "TaskboardSession", "ClientStore", "UpdateCursor",
    "DashboardView", "ProjectBoardView", "TaskDetailView",
]

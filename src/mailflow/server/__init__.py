"""FastAPI server adapter for mailflow.

This module exposes a REST API over the workflow service.

Design intent:
- Keep business logic in `mailflow.automation.*`
- Keep server-specific concerns (routing, CORS, status codes) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from mailflow.server.app import create_app

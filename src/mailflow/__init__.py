"""mailflow.

A trigger-driven workflow engine for email:
- declarative plans loaded from a local state directory
- structured logging
- a small CLI surface and a REST API
"""

__version__ = "0.1.0"

from mailflow.automation.config import AutomationSettings

__all__ = ["__version__", "AutomationSettings"]

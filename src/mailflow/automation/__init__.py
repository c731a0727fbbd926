"""Local-first automation components.

Provides:
- Settings loaded from .env
- Structured logging
- A small CLI surface
- The workflow engine and its plan store
"""

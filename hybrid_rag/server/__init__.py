"""
FastAPI Server for the Hybrid RAG Engine.

This package provides a thin HTTP wrapper around RAGEngine.
"""

from .main import app, create_app
from .dependencies import create_engine, get_engine, set_engine
from .config import Settings, get_settings

__all__ = [
    "app",
    "create_app",
    # Dependencies
    "create_engine",
    "get_engine",
    "set_engine",
    # Configuration
    "Settings",
    "get_settings",
]

"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings.
"""
import os
import tempfile

os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("STORAGE__PROVIDER", "local")
os.environ.setdefault("STORAGE__LOCAL_BASE_PATH", tempfile.mkdtemp(prefix="photo-storage-tests-"))
os.environ.setdefault("STORAGE__LOCAL_BASE_URL", "/uploads")

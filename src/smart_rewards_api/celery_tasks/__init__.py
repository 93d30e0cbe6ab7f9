"""Celery task modules for Smart Rewards."""

# Import submodules so Celery autodiscovery registers tasks.
from . import mukando as _mukando  # noqa: F401

__all__ = ["_mukando"]

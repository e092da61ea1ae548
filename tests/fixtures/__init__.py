"""Shared pytest fixtures for the gateway tests."""

from .core import *  # noqa: F401,F403
from .services import *  # noqa: F401,F403

"""HTTP service exposing the emitted graph to visualization clients."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]

"""HTTP API for the payroll core."""

from payroll_core.api.app import create_app

__all__ = ["create_app"]

"""HTTP interface for the packing tracker."""

from .app import create_app

__all__ = ["create_app"]

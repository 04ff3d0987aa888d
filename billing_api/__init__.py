"""HTTP surface over the billing kernel."""

from billing_api.app import create_app

__all__ = ["create_app"]

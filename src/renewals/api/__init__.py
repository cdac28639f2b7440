"""Local stand-in for the renewals backend API."""

from renewals.api.app import create_app

__all__ = ["create_app"]

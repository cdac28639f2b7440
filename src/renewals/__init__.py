"""Renewals: tracking of expiring domains, licenses, hosting and subscriptions."""

__version__ = "0.1.0"

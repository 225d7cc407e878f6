"""SMTP credential loading for Restock Radar."""

from .credentials import SmtpCredentials, load_smtp_credentials

__all__ = ["SmtpCredentials", "load_smtp_credentials"]

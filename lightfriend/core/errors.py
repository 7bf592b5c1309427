"""
Exceptions shared by the service layer.
"""
from typing import Optional


class ExternalServiceError(Exception):
    """A third-party API answered with an error or could not be reached."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class WebhookSignatureError(Exception):
    """Webhook payload signature missing or not matching."""


class ConfigurationError(Exception):
    """A feature was used without its credentials configured."""

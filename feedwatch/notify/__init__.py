"""Notification transports and message formatting."""

from .transport import AppriseTransport, Transport, format_body, mask_url

__all__ = ["AppriseTransport", "Transport", "format_body", "mask_url"]

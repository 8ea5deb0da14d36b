"""
Error types raised by the chart-to-image resolution pipeline.

Each error carries the HTTP status code the web layer answers with.

Author:
    - Name: Anubhav Patrick
    - Email: anubhav.patrick@giindia.com
    - Date: 2025-06-12
"""


class ImageInspectorError(Exception):
    """Base exception for all pipeline errors."""

    status_code = 500


class RetrievalError(ImageInspectorError):
    """Raised when the chart repository cannot be cloned."""


class StructureError(ImageInspectorError):
    """Raised when the charts directory exists but cannot be read."""

    status_code = 404


class NotFoundError(ImageInspectorError):
    """Raised when no chart yields a usable image reference."""

    status_code = 404


class RuntimeUnavailableError(ImageInspectorError):
    """Raised when the container runtime cannot pull the image."""


class MetadataError(ImageInspectorError):
    """Raised when image inspection fails or returns unusable data."""

"""External service integrations."""

from .platform_client import ApiConfig, PlatformClient

__all__ = ["ApiConfig", "PlatformClient"]

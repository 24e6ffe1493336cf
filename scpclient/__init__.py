from .auth import RefreshTokenAuth
from .client import ScpClient
from .errors import ScpApiError, ScpAuthError, ScpError, UptimeParseError
from .legacy import LegacyScpClient

__all__ = [
    "RefreshTokenAuth",
    "ScpClient",
    "LegacyScpClient",
    "ScpError",
    "ScpApiError",
    "ScpAuthError",
    "UptimeParseError",
]

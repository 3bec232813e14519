"""Remote provider clients."""

from .google import GoogleCloudClient, TokenResponse, UserInfo, parse_quota


__all__ = ["GoogleCloudClient", "TokenResponse", "UserInfo", "parse_quota"]

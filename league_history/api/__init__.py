"""
API integration for the remote league source.

This package provides the HTTP client for discovery, scraping and safe-mode
endpoints, and the session authenticator that issues bearer credentials.
"""

from .client import AuthFailure, LeagueAPIClient, LeagueAPIError
from .session import Session, SessionAuthenticator

__all__ = [
    "AuthFailure",
    "LeagueAPIClient",
    "LeagueAPIError",
    "Session",
    "SessionAuthenticator",
]

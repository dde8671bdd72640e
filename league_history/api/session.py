"""
Session acquisition for the league source.

A Session is a plain value handed to every discovery and scrape call, so two
runs in the same process never share credential state.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, SecretStr

from ..utils.logger import get_logger
from .client import AuthFailure, LeagueAPIClient, LeagueAPIError

logger = get_logger()


class Session(BaseModel):
    """An acquired bearer credential."""

    token: SecretStr
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token.get_secret_value()}"}


class SessionAuthenticator:
    """Obtains a Session from the configured identity and secret."""

    def __init__(self, client: LeagueAPIClient, email: str, password: str):
        self.client = client
        self.email = email
        self._password = password

    async def acquire(self) -> Session:
        """
        Log in and return a Session.

        Raises:
            AuthFailure: If the login is rejected or cannot be performed
        """
        logger.info("Logging in to league source", extra={"email": self.email})

        try:
            token = await self.client.login(self.email, self._password)
        except AuthFailure:
            logger.error("Login rejected", extra={"email": self.email})
            raise
        except LeagueAPIError as e:
            logger.error(
                "Login request failed",
                extra={"email": self.email, "error": str(e)},
            )
            raise AuthFailure(
                f"Login could not be performed: {e}", status_code=e.status_code
            ) from e

        logger.info("Login successful", extra={"email": self.email})
        return Session(token=SecretStr(token))

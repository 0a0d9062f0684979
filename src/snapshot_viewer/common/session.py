import logging
import os

logger = logging.getLogger(__name__)

# Get the API URL from environment variable.
SNAPSHOT_API_URL = os.getenv("SNAPSHOT_API_URL", "http://gateway:8000")


class ApiSession:
    """
    Holds the connection details and credentials of one analyst session.

    A session is created per detail view (or per process in scripts) and
    passed to whatever needs to talk to the API, rather than being read from
    global state. Authentication starts the authenticated part of its
    lifecycle and logging out ends it.
    """

    def __init__(self, base_url: str = SNAPSHOT_API_URL):
        """
        Creates a new, unauthenticated session.

        Args:
            base_url: The base URL of the snapshot API.
        """
        self.base_url = base_url.rstrip("/")
        self.token: str | None = None
        self.user_name: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    @property
    def headers(self) -> dict[str, str]:
        """The request headers for the session's current credentials."""
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def url(self, path: str) -> str:
        """
        Builds an absolute URL for an API path.

        Args:
            path: The path of the endpoint, with or without a leading slash.

        Returns:
            The URL of the endpoint on the session's API.
        """
        return f"{self.base_url}/{path.lstrip('/')}"

    def authenticate(self, token: str, user_name: str | None = None) -> None:
        """
        Attaches credentials to the session after a successful login.

        Args:
            token: The bearer token issued by the API.
            user_name: The name of the signed-in analyst, if known.
        """
        self.token = token
        self.user_name = user_name
        logger.info(f"Session authenticated for {user_name or 'unknown user'}")

    def logout(self) -> None:
        """Drops the session's credentials."""
        if self.token is not None:
            logger.info(f"Session for {self.user_name or 'unknown user'} logged out")
        self.token = None
        self.user_name = None

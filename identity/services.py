from dataclasses import asdict, dataclass

from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from loguru import logger

from portfolio.errors import AuthError


@dataclass(frozen=True)
class User:
    uid: str
    name: str = ""
    email: str = ""
    avatarUrl: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def _verify_google_token(credential: str, client_id: str) -> dict:
    return id_token.verify_oauth2_token(credential, google_requests.Request(), client_id)


class GoogleIdentityProvider:
    """
    Sign-in with a Google ID token obtained by the browser.
    The verifier is injectable so tests never reach Google.
    """

    def __init__(self, client_id: str = None, verifier=_verify_google_token):
        self.client_id = client_id
        self.verifier = verifier

    def sign_in(self, credential: str) -> User:
        if not credential:
            raise AuthError("No sign-in credential was provided.")
        if not self.client_id:
            raise AuthError("Sign-in is not configured. Set GOOGLE_CLIENT_ID.")
        try:
            claims = self.verifier(credential, self.client_id)
        except (ValueError, google_exceptions.GoogleAuthError) as exc:
            logger.warning("Rejected Google credential: {}", exc)
            raise AuthError(f"An unexpected error occurred: {exc}") from exc

        if not claims or not claims.get("sub"):
            raise AuthError("The sign-in response did not identify a user.")
        return User(
            uid=claims["sub"],
            name=claims.get("name", ""),
            email=claims.get("email", ""),
            avatarUrl=claims.get("picture", ""),
        )

    def sign_out(self, user: User):
        logger.info("User {} signed out", user.uid if user else None)

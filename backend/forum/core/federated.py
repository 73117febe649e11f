"""
Federated (Google) sign-in helpers.

`verify_google_identity` checks the ID token issued to the frontend and
`lookup_directory_profile` enriches brand new accounts from the employee
directory when one is configured.
"""
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from forum.core.config import settings
from forum.text_utils import email_in_domain, normalize_email

logger = logging.getLogger(__name__)


class FederatedLoginError(ValueError):
    """The external credential was rejected."""


class FederatedLoginNotConfigured(RuntimeError):
    pass


@dataclass(frozen=True)
class FederatedIdentity:
    subject: str
    email: str
    name: str | None = None
    picture: str | None = None


def verify_google_identity(credential: str) -> FederatedIdentity:
    if not settings.GOOGLE_CLIENT_ID:
        raise FederatedLoginNotConfigured("GOOGLE_CLIENT_ID is not configured")

    try:
        claims: dict[str, Any] = id_token.verify_oauth2_token(
            credential,
            google_requests.Request(),
            settings.GOOGLE_CLIENT_ID,
        )
    except (ValueError, GoogleAuthError) as exc:
        raise FederatedLoginError("Invalid Google credential") from exc

    email = normalize_email(claims.get("email"))
    if not email or not claims.get("email_verified"):
        raise FederatedLoginError("Google account email is not verified")
    if not email_in_domain(email, settings.INSTITUTIONAL_EMAIL_DOMAIN):
        raise FederatedLoginError(
            f"Only @{settings.INSTITUTIONAL_EMAIL_DOMAIN} accounts are allowed"
        )

    return FederatedIdentity(
        subject=str(claims["sub"]),
        email=email,
        name=claims.get("name"),
        picture=claims.get("picture"),
    )


def lookup_directory_profile(email: str) -> dict[str, Any] | None:
    """Fetch profile fields for `email` from the employee directory.

    Profile enrichment is best effort: a missing or failing directory
    yields None and the account is created from the token claims alone.
    """
    if not settings.DIRECTORY_LOOKUP_URL:
        return None
    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.get(settings.DIRECTORY_LOOKUP_URL, params={"email": email})
            response.raise_for_status()
            payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Directory lookup failed for %s: %s", email, exc)
        return None

    if not isinstance(payload, dict):
        return None
    return {
        "full_name": payload.get("full_name") or payload.get("name"),
        "department": payload.get("department"),
        "job_title": payload.get("job_title"),
        "registration_number": payload.get("registration_number"),
        "phone": payload.get("phone"),
        "location": payload.get("location"),
    }

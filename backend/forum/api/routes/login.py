import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import IntegrityError

from forum import crud
from forum.api.deps import CurrentUser, SessionDep
from forum.core.config import settings
from forum.core.federated import (
    FederatedLoginError,
    lookup_directory_profile,
    verify_google_identity,
)
from forum.core.security import create_access_token
from forum.models import (
    AuthResponse,
    CurrentUserResponse,
    GoogleLogin,
    Message,
    UserLogin,
    UserPublic,
    UserRegister,
)
from forum.text_utils import email_in_domain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["login"])

DUPLICATE_USER = "A user with this email or registration number already exists"


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(session: SessionDep, user_in: UserRegister) -> Any:
    """
    Create an account with an institutional email and return a token.
    """
    if not email_in_domain(str(user_in.email), settings.INSTITUTIONAL_EMAIL_DOMAIN):
        raise HTTPException(
            status_code=400,
            detail=f"Only @{settings.INSTITUTIONAL_EMAIL_DOMAIN} emails are allowed",
        )
    conflict = crud.find_registration_conflict(
        session=session,
        email=str(user_in.email),
        registration_number=user_in.registration_number,
    )
    if conflict:
        raise HTTPException(status_code=400, detail=DUPLICATE_USER)
    try:
        user = crud.create_user(session=session, user_create=user_in)
    except IntegrityError:
        # a concurrent registration took the email or registration number
        session.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_USER)
    logger.info("Registered user %s", user.email)
    return AuthResponse(
        message="User registered successfully",
        user=UserPublic.model_validate(user),
        token=create_access_token(user.id),
    )


@router.post("/login", response_model=AuthResponse)
def login(session: SessionDep, credentials: UserLogin) -> Any:
    user = crud.authenticate(
        session=session, email=str(credentials.email), password=credentials.password
    )
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Inactive user")
    user = crud.record_login(session=session, db_user=user)
    return AuthResponse(
        message="Login successful",
        user=UserPublic.model_validate(user),
        token=create_access_token(user.id),
    )


@router.post("/google", response_model=AuthResponse)
def login_google(session: SessionDep, body: GoogleLogin) -> Any:
    """
    Exchange a Google ID token for a local access token.
    """
    try:
        identity = verify_google_identity(body.credential)
    except FederatedLoginError as exc:
        raise HTTPException(status_code=401, detail=str(exc))

    existing = crud.get_user_by_email(session=session, email=identity.email)
    profile = None if existing else lookup_directory_profile(identity.email)
    user, created = crud.get_or_create_federated_user(
        session=session, identity=identity, profile=profile
    )
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Inactive user")
    user = crud.record_login(session=session, db_user=user)
    return AuthResponse(
        message="Account created successfully" if created else "Login successful",
        user=UserPublic.model_validate(user),
        token=create_access_token(user.id),
    )


@router.get("/me", response_model=CurrentUserResponse)
def read_me(current_user: CurrentUser) -> Any:
    return CurrentUserResponse(user=UserPublic.model_validate(current_user))


@router.post("/logout", response_model=Message)
def logout(current_user: CurrentUser) -> Any:
    # tokens are stateless; the client discards its copy
    return Message(message="Logout successful")

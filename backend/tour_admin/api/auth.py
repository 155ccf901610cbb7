import time
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from tour_admin.api.schemas import Token, User
from tour_admin.core.rate_limit import limiter, settings as limit_settings
from tour_admin.core.security import (
    AuthenticationError,
    AuthorizationError,
    IdentityProvider,
    auth_http_error,
    get_current_admin,
    get_identity,
    oauth2_scheme,
)

# Set up logging
logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# Performance timer
@asynccontextmanager
async def performance_timer(operation: str):
    """Context manager for timing operations"""
    start = time.time()
    try:
        yield
    finally:
        duration = time.time() - start
        logger.info("operation_completed", operation=operation, duration_seconds=round(duration, 2))


@router.post("/login",
    response_model=Token,
    responses={
        200: {"description": "Successfully authenticated"},
        401: {"description": "Invalid credentials"},
        403: {"description": "Account is not an administrator"},
        429: {"description": "Too many login attempts"},
        500: {"description": "Authentication service error"}
    },
    summary="Admin login",
    description="Sign in with email and password; only allow-listed admins receive a token"
)
@limiter.limit(limit_settings.RATE_LIMIT_LOGIN)
async def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    identity: IdentityProvider = Depends(get_identity),
):
    """Authenticate an admin and return an access token"""
    async with performance_timer("admin_login"):
        try:
            access_token = await identity.sign_in(form_data.username, form_data.password)
        except (AuthenticationError, AuthorizationError) as e:
            logger.warning(
                "admin_login_rejected",
                email=form_data.username,
                reason=type(e).__name__,
                ip_address=request.client.host if request.client else None
            )
            raise auth_http_error(e)
        except Exception as e:
            logger.error("admin_login_error", error=str(e), error_type=type(e).__name__)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Login failed"
            )

        logger.info(
            "admin_login_success",
            email=form_data.username,
            ip_address=request.client.host if request.client else None
        )
        return Token(
            access_token=access_token,
            expires_in=identity.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )


@router.post("/logout",
    responses={200: {"description": "Token revoked"}},
    summary="Admin logout"
)
async def logout(
    token: str = Depends(oauth2_scheme),
    identity: IdentityProvider = Depends(get_identity),
):
    identity.sign_out(token)
    logger.info("admin_logout")
    return {"message": "Signed out"}


@router.get("/me", response_model=User, summary="Current admin")
async def read_current_admin(admin: User = Depends(get_current_admin)):
    return admin

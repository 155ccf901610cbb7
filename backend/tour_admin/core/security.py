import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from tour_admin.api.schemas import Account, User, parse_document
from tour_admin.core.settings import Settings
from tour_admin.db.crud import DocumentStore
from tour_admin.db.models import Collection, UserRole

# Set up logging
logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


class AuthenticationError(Exception):
    """Unknown account, wrong password or an unusable token"""


class AuthorizationError(Exception):
    """Signed in, but not on the admin allow-list"""


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain, hashed)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


class IdentityProvider:
    """
    Email/password sign-in backed by the ``accounts`` collection.

    Signing in only proves identity. Access to the back-office additionally
    requires a row in the ``admins`` collection keyed by the account id;
    its absence is an authorization failure, never an authentication one.
    """

    def __init__(self, store: DocumentStore, settings: Settings, clock: Callable[[], float] = time.time):
        self.store = store
        self.settings = settings
        self.clock = clock
        # In-memory token blacklist (use Redis in production): token -> exp timestamp
        self._blacklist: Dict[str, float] = {}

    async def find_account(self, email: str) -> Optional[Account]:
        snapshots = await self.store.find(
            Collection.ACCOUNTS.value,
            filters={"email": email.strip().lower()},
            limit=1,
        )
        return parse_document(Account, snapshots[0]) if snapshots else None

    async def create_account(self, email: str, password: str, display_name: str = "") -> Account:
        email = email.strip().lower()
        if len(password) < self.settings.PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {self.settings.PASSWORD_MIN_LENGTH} characters")
        if await self.find_account(email):
            raise ValueError("Email already registered")

        snapshot = await self.store.add(Collection.ACCOUNTS.value, {
            "email": email,
            "passwordHash": get_password_hash(password),
            "displayName": display_name,
        })
        logger.info(f"Created account {snapshot.id}")
        return parse_document(Account, snapshot)

    async def grant_admin(self, account: Account) -> None:
        await self.store.set(Collection.ADMINS.value, account.id, {"email": account.email})
        logger.info(f"Account {account.id} added to admin allow-list")

    async def is_admin(self, account_id: str) -> bool:
        return await self.store.get(Collection.ADMINS.value, account_id) is not None

    def create_access_token(self, account: Account, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode = {"sub": account.id, "email": account.email, "exp": expire, "type": "access"}
        return jwt.encode(to_encode, self.settings.JWT_SECRET, algorithm=self.settings.JWT_ALGORITHM)

    async def sign_in(self, email: str, password: str) -> str:
        """Return an access token for an allow-listed account"""
        account = await self.find_account(email)
        if account is None or not verify_password(password, account.password_hash):
            logger.warning(f"Authentication failed for {email}")
            raise AuthenticationError("Incorrect email or password")

        if not await self.is_admin(account.id):
            logger.warning(f"Account {account.id} signed in but is not an admin")
            raise AuthorizationError("Account is not an administrator")

        logger.info(f"Admin {account.id} signed in")
        return self.create_access_token(account)

    def sign_out(self, token: str) -> None:
        try:
            expires_at = float(jwt.get_unverified_claims(token)["exp"])
        except (JWTError, KeyError, TypeError, ValueError):
            # unreadable tokens are held for the longest lifetime a token can have
            expires_at = self.clock() + self.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        self._blacklist[token] = expires_at

    def is_signed_out(self, token: str) -> bool:
        # an expired token fails signature checks on its own, so its entry can go
        now = self.clock()
        for expired in [t for t, expires_at in self._blacklist.items() if expires_at <= now]:
            del self._blacklist[expired]
        return token in self._blacklist

    async def resolve_admin(self, token: str) -> User:
        """Turn a bearer token back into the admin it was issued to"""
        if self.is_signed_out(token):
            raise AuthenticationError("Token has been signed out")
        try:
            payload = jwt.decode(token, self.settings.JWT_SECRET, algorithms=[self.settings.JWT_ALGORITHM])
        except JWTError as e:
            logger.warning(f"JWT decode error: {e}")
            raise AuthenticationError("Could not validate credentials") from e

        account_id = payload.get("sub")
        if not account_id or payload.get("type") != "access":
            raise AuthenticationError("Invalid token payload")

        snapshot = await self.store.get(Collection.ACCOUNTS.value, account_id)
        if snapshot is None:
            raise AuthenticationError("Account no longer exists")

        if not await self.is_admin(account_id):
            # removed from the allow-list since sign-in: force the session out
            self.sign_out(token)
            raise AuthorizationError("Account is not an administrator")

        account = parse_document(Account, snapshot)
        return User(
            id=account.id,
            email=account.email,
            name=account.display_name,
            avatar=account.photo_url,
            role=UserRole.ADMIN,
            created_at=account.created_at,
        )


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.context.identity


def auth_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(exc) or "Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_admin(
    token: str = Depends(oauth2_scheme),
    identity: IdentityProvider = Depends(get_identity),
) -> User:
    try:
        return await identity.resolve_admin(token)
    except (AuthenticationError, AuthorizationError) as e:
        raise auth_http_error(e)


async def wait_for_admin(identity: IdentityProvider, token: str, timeout: float) -> User:
    """Resolve the current admin, giving up after ``timeout`` seconds"""
    try:
        return await asyncio.wait_for(identity.resolve_admin(token), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"Auth state not resolved within {timeout}s")
        raise AuthenticationError("Authentication state unavailable") from e

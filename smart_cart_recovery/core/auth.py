"""JWT authentication for FastAPI using the storefront's JWKS."""

import asyncio
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient, PyJWKClientError

from smart_cart_recovery.core.config import settings

# Roles allowed to manage recovery settings (WooCommerce "manage_woocommerce")
SHOP_MANAGER_ROLES = frozenset({"administrator", "shop_manager"})

# HTTP Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)

# JWKS client for fetching the storefront's public keys
_jwks_client: PyJWKClient | None = None
_jwks_lock = asyncio.Lock()


def get_jwks_client() -> PyJWKClient:
    """Get or create JWKS client."""
    global _jwks_client
    if _jwks_client is None:
        if settings.auth_jwks_url:
            jwks_url = settings.auth_jwks_url
        else:
            jwks_url = f"{settings.auth_url}/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


async def verify_token(token: str) -> dict[str, Any]:
    """Verify a JWT against the storefront JWKS.

    Args:
        token: The JWT token to verify

    Returns:
        The decoded token payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        jwks_client = get_jwks_client()
        signing_key = jwks_client.get_signing_key_from_jwt(token)

        payload: dict[str, Any] = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth_url,
            issuer=settings.auth_url,
            options={
                "verify_exp": True,
                "verify_iat": True,
                "verify_aud": True,
                "verify_iss": True,
            },
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except PyJWKClientError as e:
        # Reset cached client so next request retries fresh
        async with _jwks_lock:
            global _jwks_client
            _jwks_client = None
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Authentication service unavailable. Unable to verify token: {str(e)}",
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    """Get current authenticated user from JWT token.

    Raises:
        HTTPException: If no token provided or token is invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await verify_token(credentials.credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any] | None:
    """Get current user if authenticated, otherwise return None.

    Shoppers check out as guests as often as not, so the capture endpoint
    accepts both.
    """
    if credentials is None:
        return None

    try:
        return await verify_token(credentials.credentials)
    except HTTPException:
        return None


async def require_shop_manager(
    user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    """Reject authenticated users who cannot manage the store."""
    roles = user.get("roles") or [user.get("role")]
    if not SHOP_MANAGER_ROLES.intersection(r for r in roles if r):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Shop manager role required",
        )
    return user


def user_identity(user: dict[str, Any] | None) -> tuple[str | None, str | None, str | None]:
    """Return (user_id, email, display_name) from a decoded token payload."""
    if not user:
        return None, None, None
    user_id = user.get("sub")
    name = " ".join(
        p for p in (user.get("given_name", ""), user.get("family_name", "")) if p
    ).strip() or user.get("name")
    return (str(user_id) if user_id else None), user.get("email"), name or None


# Type aliases for dependency injection
CurrentUser = Annotated[dict[str, Any], Depends(get_current_user)]
OptionalUser = Annotated[dict[str, Any] | None, Depends(get_optional_user)]
ShopManager = Annotated[dict[str, Any], Depends(require_shop_manager)]

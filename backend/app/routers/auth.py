import os
from datetime import timedelta
from typing import Any

import jwt
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import SCORING_RATE_LIMIT, rate_limits_disabled
from ..db import get_session
from ..models import User
from ..schemas import UserOut
from ..exceptions import http_problem
from ..time_utils import utcnow


def get_jwt_secret() -> str:
  secret = os.getenv("JWT_SECRET")
  if not secret:
    raise RuntimeError("JWT_SECRET environment variable is required")
  if len(secret) < 32 or secret.lower() in {"secret", "changeme", "default"}:
    raise RuntimeError(
        "JWT_SECRET must be at least 32 characters and not a common default"
    )
  return secret


JWT_ALG = "HS256"
JWT_EXPIRE_SECONDS = 3600
ACCESS_TOKEN_COOKIE = "access_token"


def _get_client_ip(request: Request) -> str:
  forwarded = request.headers.get("X-Forwarded-For")
  if forwarded:
    parts = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
    if parts:
      return parts[-1]
  real_ip = request.headers.get("X-Real-IP")
  if real_ip:
    return real_ip
  return request.client.host if request.client else ""


limiter = Limiter(key_func=_get_client_ip)
router = APIRouter(prefix="/auth", tags=["auth"])


def scoring_rate_limit() -> str:
  if rate_limits_disabled():
    return "1000/second"
  return SCORING_RATE_LIMIT


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
  detail = exc.detail if isinstance(exc.detail, str) else ""
  if detail:
    message = f"rate limit exceeded: {detail}"
  else:
    message = "rate limit exceeded: please wait before submitting another request."
  return JSONResponse(
      status_code=429,
      content={
          "title": "Too Many Requests",
          "status": 429,
          "detail": message,
          "code": "rate_limit_exceeded",
      },
      media_type="application/problem+json",
  )


def create_access_token(user_id: str, *, expires_in: int = JWT_EXPIRE_SECONDS) -> str:
  """Sign a bearer token for ``user_id``.

  Sessions are issued by the identity provider in front of this service; the
  helper exists for service accounts, the seed script and tests.
  """

  payload = {
      "sub": user_id,
      "exp": utcnow() + timedelta(seconds=expires_in),
  }
  return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALG)


def _extract_bearer_token(request: Request, authorization: str | None) -> str:
  if authorization and authorization.lower().startswith("bearer "):
    return authorization.split(" ", 1)[1]

  cookie_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
  if cookie_token:
    return cookie_token

  raise http_problem(
      status_code=401,
      detail="missing token",
      code="auth_missing_token",
  )


def _decode(token: str) -> dict[str, Any]:
  try:
    return jwt.decode(token, get_jwt_secret(), algorithms=[JWT_ALG])
  except jwt.ExpiredSignatureError:
    raise http_problem(
        status_code=401,
        detail="token expired",
        code="auth_token_expired",
    )
  except jwt.PyJWTError:
    raise http_problem(
        status_code=401,
        detail="invalid token",
        code="auth_invalid_token",
    )


async def get_current_user(
    request: Request,
    authorization: str | None = Header(None),
    session: AsyncSession = Depends(get_session),
) -> User:
  payload = _decode(_extract_bearer_token(request, authorization))
  uid = payload.get("sub")
  user = await session.get(User, uid) if isinstance(uid, str) else None
  if not user:
    raise http_problem(
        status_code=401,
        detail="user not found",
        code="auth_user_not_found",
    )
  return user


@router.get("/me", response_model=UserOut)
async def read_me(current: User = Depends(get_current_user)):
  return UserOut(
      id=current.id,
      username=current.username,
      displayName=current.display_name,
  )

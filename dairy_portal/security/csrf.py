from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, status
from starlette.responses import Response

from dairy_portal.config import settings


CSRF_COOKIE_NAME = 'dairy_portal_csrf'
CSRF_FORM_FIELD = 'csrf_token'
CSRF_HEADER_NAME = 'x-csrf-token'
SAFE_METHODS = {'GET', 'HEAD', 'OPTIONS'}


def _new_token() -> str:
    return secrets.token_urlsafe(24)


def _set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )


def csrf_token_for(request: Request) -> str:
    """Token rendered into hidden form fields by the templates."""
    return getattr(request.state, 'csrf_token', '')


def rotate_csrf_cookie(request: Request, response: Response) -> None:
    """Issue a fresh token once the visitor signs in."""
    token = _new_token()
    request.state.csrf_token = token
    request.state.csrf_rotated = True
    _set_csrf_cookie(response, token)


def install_csrf_cookie_middleware(app) -> None:
    @app.middleware('http')
    async def csrf_cookie_middleware(request: Request, call_next):
        existing = request.cookies.get(CSRF_COOKIE_NAME)
        request.state.csrf_token = existing or _new_token()

        response = await call_next(request)
        if existing != request.state.csrf_token and not getattr(request.state, 'csrf_rotated', False):
            _set_csrf_cookie(response, request.state.csrf_token)
        return response


async def verify_csrf(request: Request) -> None:
    if request.method in SAFE_METHODS:
        return

    submitted = request.headers.get(CSRF_HEADER_NAME)
    if not submitted:
        form = await request.form()
        submitted = form.get(CSRF_FORM_FIELD)
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
    if not submitted or not cookie_token or not secrets.compare_digest(str(submitted), cookie_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Form expired, reload the page and try again')

from fastapi import FastAPI, Request
from starlette.responses import Response


ROBOTS_HEADER = "noindex, nofollow, noarchive"
# Published bill PDFs are served from here and may be cached by the recipient.
PUBLIC_BILL_PREFIX = "/bills/files/"


def security_headers_for(path: str) -> dict[str, str]:
    headers = {
        "X-Robots-Tag": ROBOTS_HEADER,
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        # Bill links leave the site through wa.me; keep the portal path out of the referrer.
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }
    if not path.startswith(PUBLIC_BILL_PREFIX):
        # Pages carry customer balances.
        headers["Cache-Control"] = "no-store"
    return headers


def install_security_headers(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        for name, value in security_headers_for(request.url.path).items():
            response.headers.setdefault(name, value)
        return response

"""Security headers and HTTPS enforcement"""
from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from chatbuddy.config import get_settings

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
    # the widget bundle and avatars are loaded from other origins
    "Cross-Origin-Resource-Policy": "cross-origin",
}

HSTS = "max-age=31536000; includeSubDomains; preload"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers; redirects to HTTPS behind a proxy in production"""

    async def dispatch(self, request: Request, call_next):
        settings = get_settings()
        if settings.is_production and settings.force_https:
            proto = request.headers.get("x-forwarded-proto")
            if proto and proto != "https":
                url = request.url.replace(scheme="https")
                return RedirectResponse(str(url), status_code=301)

        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        if settings.is_production:
            response.headers.setdefault("Strict-Transport-Security", HSTS)
        return response

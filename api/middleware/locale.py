from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.i18n import set_locale

DEFAULT_LOCALE = "en"


def pick_accept_language(header: str) -> str:
    """Return the highest-weighted tag of an Accept-Language header.

    'zh-CN,zh;q=0.9,en;q=0.7' -> 'zh-CN'
    """
    best, best_q = DEFAULT_LOCALE, -1.0
    for part in header.split(","):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip()
        if not tag or tag == "*":
            continue
        q = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                q = float(params[2:])
            except ValueError:
                q = 0.0
        if q > best_q:
            best, best_q = tag, q
    return best


def normalize_locale(lang: str) -> str:
    """Map browser tags onto the locale directories we ship."""
    tag = (lang or DEFAULT_LOCALE).replace("_", "-").lower()
    if tag in {"zh", "zh-cn", "zh-hans"}:
        return "zh_Hans"
    if tag.startswith("en"):
        return "en"
    return lang


class LocaleMiddleware(BaseHTTPMiddleware):
    """Priority: ?lang=xx > X-Lang > Accept-Language > 'en'."""

    async def dispatch(self, request: Request, call_next):
        lang = request.query_params.get("lang") or request.headers.get("X-Lang")
        if not lang:
            accept = request.headers.get("Accept-Language", "")
            lang = pick_accept_language(accept) if accept else DEFAULT_LOCALE
        set_locale(normalize_locale(lang))
        request.state.locale = lang
        return await call_next(request)

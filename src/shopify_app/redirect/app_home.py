"""Redirects issued from the embedded app home.

:func:`app_home_redirect` moves to another page of the app while staying in
the admin iframe. :func:`app_home_parent_redirect` leaves the iframe, either
replacing the whole admin window (``_top``) or opening a new one (``_blank``).

Fetch requests (with ``Authorization``) and document requests need different
responses:

=====================  ==============================  ==============================
Request                In-app redirect                 Parent redirect
=====================  ==============================  ==============================
fetch                  302 ``Location``                401 with the reauthorize header
document               302 ``Location`` + CSP/Link     200 with CSP/Link; the page
                                                       opens ``location`` in ``target``
=====================  ==============================  ==============================

The App Bridge page a document parent redirect needs is rendered by the app.
The result carries ``location`` and ``target`` for it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode

from shopify_app.logging import get_logger
from shopify_app.types import LogWithReq, RedirectResult, RequestInput, ResponseInfo
from shopify_app.utils.headers import normalize_headers
from shopify_app.utils.shop import ADMIN_ORIGIN, SHOP_DOMAIN_SUFFIX, strip_shop_domain
from shopify_app.utils.urls import split_url, url_query
from shopify_app.verify.app_home import document_headers
from shopify_app.verify.extensions import REAUTHORIZE_URL_HEADER

logger = get_logger(__name__)

PARENT_TARGETS = ("_top", "_blank")

# Launch parameters the admin adds to app URLs; they must not be replayed
# on admin or shop URLs.
RESTRICTED_PARAMS = frozenset(
    {
        "hmac",
        "locale",
        "protocol",
        "session",
        "id_token",
        "shop",
        "timestamp",
        "host",
        "embedded",
        "appLoadId",
    }
)

REDIRECT_DETAIL = (
    "App Home Redirect response constructed. "
    "Respond with the provided response to redirect within the app."
)
PARENT_REDIRECT_DETAIL = (
    "App Home Parent Redirect response constructed. "
    "Respond with the provided response to redirect outside the app iframe."
)
PARENT_DOCUMENT_DETAIL = (
    "App Home Parent Redirect constructed. Render a page that opens `location` "
    "in `target` with App Bridge, including the headers in the provided response."
)


def _failure(
    req: RequestInput,
    code: str,
    detail: str,
    status: int,
    shop: str | None = None,
) -> RedirectResult:
    logger.info("app_home_redirect_rejected", code=code, shop=shop)
    return RedirectResult(
        ok=False,
        shop=shop,
        location=None,
        target=None,
        log=LogWithReq(code=code, detail=detail, req=req.as_dict()),
        response=ResponseInfo(status, "Bad Request" if status == 400 else ""),
    )


def _check_request(req: RequestInput, shop: Any) -> RedirectResult | None:
    if not isinstance(req.headers, Mapping):
        return _failure(req, "configuration_error", "Expected request.headers to be an object", 500)
    if not isinstance(req.url, str) or not req.url:
        return _failure(
            req, "configuration_error", "Expected request.url to be a non-empty string", 500
        )
    if not isinstance(shop, str) or not strip_shop_domain(shop):
        return _failure(req, "configuration_error", "Expected shop to be a non-empty string", 500)
    return None


def is_relative_path(url: Any) -> bool:
    """Whether ``url`` is a path on the app's own origin.

    Protocol-relative URLs (``//evil.example``, ``/\\evil.example``) are
    rejected because browsers resolve them to another host.

    Example:
        >>> is_relative_path("/orders?tab=open"), is_relative_path("//evil.example")
        (True, False)
    """
    if not isinstance(url, str) or not url.startswith("/"):
        return False
    return not url.startswith(("//", "/\\"))


def merge_url_params(request_url: str, redirect_url: str) -> str:
    """Carry the request's query parameters over to ``redirect_url``.

    Parameters already present on ``redirect_url`` win. The fragment of
    ``redirect_url`` is kept.

    Example:
        >>> merge_url_params("https://app.example.com/?shop=s&host=h", "/orders?host=x#top")
        '/orders?host=x&shop=s#top'
    """
    parts = split_url(redirect_url)
    if parts is None:
        return redirect_url
    merged = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in parse_qsl(url_query(request_url), keep_blank_values=True):
        merged.setdefault(key, value)

    location = parts.path
    if merged:
        location += f"?{urlencode(merged)}"
    if parts.fragment:
        location += f"#{parts.fragment}"
    return location


def strip_restricted_params(url: str) -> str:
    """Drop admin launch parameters from admin and shop URLs.

    Other hosts are returned unchanged.

    Example:
        >>> strip_restricted_params("https://admin.shopify.com/store/s/apps?shop=s&tab=1")
        'https://admin.shopify.com/store/s/apps?tab=1'
    """
    parts = split_url(url)
    if parts is None or not parts.query:
        return url
    host = parts.hostname or ""
    if f"https://{host}" != ADMIN_ORIGIN and not host.endswith(SHOP_DOMAIN_SUFFIX):
        return url

    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in RESTRICTED_PARAMS
    ]
    stripped = f"{parts.scheme}://{parts.netloc}{parts.path}"
    if kept:
        stripped += f"?{urlencode(kept)}"
    if parts.fragment:
        stripped += f"#{parts.fragment}"
    return stripped


def app_home_redirect(req: RequestInput, redirect_url: Any, shop: Any) -> RedirectResult:
    """Redirect to another page of the app, staying inside the admin iframe.

    Args:
        req: The request being answered; its query parameters are carried over.
        redirect_url: Relative path such as ``/orders``.
        shop: Shop name or domain, used for the frame-ancestors CSP.

    Returns:
        RedirectResult with a 302 ``response`` when ``ok`` is True.
    """
    failure = _check_request(req, shop)
    if failure is not None:
        return failure

    shop_name = strip_shop_domain(shop)
    if not is_relative_path(redirect_url):
        return _failure(
            req,
            "invalid_redirect_url",
            f"Redirect URL must be a relative path starting with '/'. Received {redirect_url}. "
            "Respond 400 Bad Request using the provided response.",
            400,
            shop=shop_name,
        )

    location = merge_url_params(req.url, redirect_url)
    headers = normalize_headers(req.headers)
    if "authorization" in headers and "x-shopify-bounce" not in headers:
        response_headers = {"Location": location}
    else:
        response_headers = {
            "Location": location,
            **document_headers(f"{shop_name}{SHOP_DOMAIN_SUFFIX}"),
        }

    logger.debug("app_home_redirect_built", shop=shop_name)
    return RedirectResult(
        ok=True,
        shop=shop_name,
        location=location,
        target=None,
        log=LogWithReq(code="app_home_redirect_success", detail=REDIRECT_DETAIL, req=req.as_dict()),
        response=ResponseInfo(302, "", response_headers),
    )


def app_home_parent_redirect(
    req: RequestInput,
    redirect_url: Any,
    shop: Any,
    target: str | None = None,
) -> RedirectResult:
    """Redirect the admin window itself, leaving the app iframe.

    Admin launch parameters (``shop``, ``host``, ``id_token``, ...) are
    removed from admin and shop URLs.

    Args:
        req: The request being answered.
        redirect_url: Absolute ``http`` or ``https`` URL.
        shop: Shop name or domain, used for the frame-ancestors CSP.
        target: ``_top`` (default) or ``_blank``.

    Returns:
        RedirectResult. Fetch requests get a 401 carrying the reauthorize
        header; document requests get a 200 whose page must open
        ``location`` in ``target``.
    """
    failure = _check_request(req, shop)
    if failure is not None:
        return failure

    shop_name = strip_shop_domain(shop)
    target = target if target is not None else "_top"
    if target not in PARENT_TARGETS:
        return _failure(
            req,
            "invalid_target",
            f"Target must be '_top' or '_blank'. Received {target}. "
            "Respond 400 Bad Request using the provided response.",
            400,
            shop=shop_name,
        )

    parts = split_url(redirect_url) if isinstance(redirect_url, str) else None
    if parts is None or parts.scheme not in ("http", "https"):
        return _failure(
            req, "configuration_error", "Redirect URL must use http or https scheme", 500
        )

    location = strip_restricted_params(redirect_url)
    headers = normalize_headers(req.headers)
    if "authorization" in headers:
        detail = PARENT_REDIRECT_DETAIL
        response = ResponseInfo(401, "", {REAUTHORIZE_URL_HEADER: location})
    else:
        detail = PARENT_DOCUMENT_DETAIL
        response = ResponseInfo(200, "", document_headers(f"{shop_name}{SHOP_DOMAIN_SUFFIX}"))

    logger.debug("app_home_parent_redirect_built", shop=shop_name, target=target)
    return RedirectResult(
        ok=True,
        shop=shop_name,
        location=location,
        target=target,
        log=LogWithReq(
            code="app_home_parent_redirect_success", detail=detail, req=req.as_dict()
        ),
        response=response,
    )

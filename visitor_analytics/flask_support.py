from typing import Optional

from flask import Request, Response, request as current_request

from .context import VisitorCookie
from .request import RequestContext


def request_context_from_flask(req: Optional[Request] = None) -> RequestContext:
    """Build a RequestContext from a Flask request (the current one by default)."""
    req = req if req is not None else current_request
    return RequestContext.from_environ(req.environ)


def set_visitor_cookie(response: Response, cookie: Optional[VisitorCookie]) -> Response:
    if cookie is None:
        return response
    response.set_cookie(
        cookie.name,
        cookie.value,
        max_age=cookie.max_age,
        expires=cookie.expires,
        path=cookie.path,
        domain=cookie.domain,
    )
    return response

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from werkzeug.http import parse_cookie


@dataclass
class RequestContext:
    """
    Request state the visitor context reads from. The hosting integration
    fills it in; every field is optional.
    """

    forwarded_host: Optional[str] = None
    server_name: Optional[str] = None
    host: Optional[str] = None
    client_ip: Optional[str] = None
    forwarded_for: Optional[str] = None
    remote_addr: Optional[str] = None
    request_uri: Optional[str] = None
    referrer: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any]) -> "RequestContext":
        """Build a context from a WSGI environ."""
        uri = environ.get("REQUEST_URI") or environ.get("RAW_URI")
        if not uri:
            # PATH_INFO is already decoded; quote it back to the raw form
            uri = quote(
                environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", ""),
                encoding="latin-1",
                errors="replace",
            )
            qs = environ.get("QUERY_STRING")
            if qs:
                uri += "?" + qs
        return cls(
            forwarded_host=environ.get("HTTP_X_FORWARDED_HOST"),
            server_name=environ.get("SERVER_NAME"),
            host=environ.get("HTTP_HOST"),
            client_ip=environ.get("HTTP_CLIENT_IP"),
            forwarded_for=environ.get("HTTP_X_FORWARDED_FOR"),
            remote_addr=environ.get("REMOTE_ADDR"),
            request_uri=uri or None,
            referrer=environ.get("HTTP_REFERER"),
            cookies=parse_cookie(environ.get("HTTP_COOKIE", "")).to_dict(),
        )

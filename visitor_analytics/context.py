import html
import logging
import re
import time
from html.entities import codepoint2name
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import SplitResult, unquote_plus, urlsplit

from .beacon import PAGE_ENTER, PAGE_EXIT, Beacon, parse_beacon
from .config import AnalyticsConfig
from .enrichment import GeoIpProvider, GeoLookupResult
from .request import RequestContext

log = logging.getLogger(__name__)

PORT_SUFFIX_REGEX = re.compile(r":\d+$")
# an unclosed tag runs to the end of the string
TAG_REGEX = re.compile(r"<[^>]*(?:>|$)")


class VisitorAnalyticsError(Exception):
    pass


class InvalidProviderResult(VisitorAnalyticsError):
    """A geo IP provider returned a result without a country code and name."""


@dataclass(frozen=True)
class VisitorCookie:
    name: str
    value: str
    expires: int
    max_age: int
    path: str = "/"
    domain: Optional[str] = None


@dataclass
class PageView:
    visitor_id: str
    first_visit: bool
    domain: Optional[str]
    ip: Optional[str]
    path: Optional[str]
    browser_name: Optional[str]
    browser_major_version: Optional[Any]
    os_name: Optional[str]
    device_type: Optional[str]
    time_on_page: Optional[Any]
    total_time_on_site: Optional[Any]
    page_enter: bool
    page_exit: bool
    country_code: Optional[str]
    country_name: Optional[str]
    referrer_domain: Optional[str]
    referrer_path: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def encode_entities(text: str) -> str:
    """html escape, quotes included, then named entities for non-ASCII characters."""
    text = html.escape(text, quote=True)
    return "".join(
        f"&{codepoint2name[ord(ch)]};" if ord(ch) > 127 and ord(ch) in codepoint2name else ch
        for ch in text
    )


def new_visitor_id(prefix: str, now: float) -> str:
    """Time based id: prefix, a dot, 8 hex digits of seconds and 5 of microseconds."""
    sec = int(now)
    usec = int((now - sec) * 1_000_000)
    return f"{prefix}.{sec:08x}{usec:05x}"


class VisitorContext:
    """
    Analytics view of one request: visitor id, beacon data, request
    headers and the (cached) geo ip lookup.

    Accessors return None when the value is not available. Only
    InvalidProviderResult is ever raised, when a custom provider returns
    a malformed result.
    """

    def __init__(
        self,
        request: RequestContext,
        beacon: Optional[str] = "",
        geo_ip_provider: Optional[GeoIpProvider] = None,
        config: Optional[AnalyticsConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.request = request
        self.config = config or AnalyticsConfig()
        self.beacon: Beacon = parse_beacon(beacon)
        self._geo_ip_provider = geo_ip_provider
        self._geo_cache: Dict[str, GeoLookupResult] = {}

        now = clock()
        existing = request.cookies.get(self.config.cookie_name)
        if existing:
            self._visitor_id = existing
            self._first_visit = False
            self.cookie: Optional[VisitorCookie] = None
        else:
            self._visitor_id = new_visitor_id(self.config.cookie_name, now)
            self._first_visit = True
            self.cookie = VisitorCookie(
                name=self.config.cookie_name,
                value=self._visitor_id,
                expires=int(now) + self.config.session_duration,
                max_age=self.config.session_duration,
                path="/",
                domain=self.get_domain_name(),
            )
            log.debug("new visitor %s", self._visitor_id)

    @classmethod
    def begin(cls, request: RequestContext, beacon: Optional[str] = "", **kwargs) -> "VisitorContext":
        return cls(request, beacon, **kwargs)

    def get_visitor_id(self) -> str:
        return self._visitor_id

    def is_first_visit(self) -> bool:
        """True if the request came without a visitor cookie."""
        return self._first_visit

    @property
    def geo_ip_provider(self) -> GeoIpProvider:
        if self._geo_ip_provider is None:
            self._geo_ip_provider = self.config.make_provider()
        return self._geo_ip_provider

    def set_geo_ip_provider(self, provider: GeoIpProvider):
        if not isinstance(provider, GeoIpProvider):
            raise TypeError(f"{type(provider).__name__} does not implement lookup(ip)")
        self._geo_ip_provider = provider

    # beacon

    def get_browser_name(self) -> Optional[str]:
        return self.beacon.browser_name

    def get_browser_major_version(self) -> Optional[Any]:
        return self.beacon.browser_major_version

    def get_os_name(self) -> Optional[str]:
        return self.beacon.os_name

    def get_user_device_type(self) -> Optional[str]:
        """desktop, mobile or tablet, as reported by the beacon."""
        return self.beacon.device_type

    def get_time_on_page(self) -> Optional[Any]:
        """Seconds spent on the page. Sent with the exit beacon."""
        return self.beacon.time_on_page

    def get_total_time_on_site(self) -> Optional[Any]:
        return self.beacon.total_time_on_site

    def is_page_enter(self) -> bool:
        return self.beacon.page_state == PAGE_ENTER

    def is_page_exit(self) -> bool:
        return self.beacon.page_state == PAGE_EXIT

    # request

    def get_domain_name(self) -> Optional[str]:
        req = self.request
        if req.forwarded_host:
            host = req.forwarded_host.split(",")[0].strip()
        elif req.server_name:
            host = req.server_name
        else:
            host = req.host
        if not host:
            return None
        host = PORT_SUFFIX_REGEX.sub("", host.strip()).strip()
        return host or None

    def get_visitor_ip_address(self) -> Optional[str]:
        req = self.request
        if req.client_ip and req.client_ip.strip():
            return req.client_ip.strip()
        if req.forwarded_for and req.forwarded_for.strip():
            return req.forwarded_for.split(",")[0].strip() or None
        return req.remote_addr or None

    def get_current_path(self) -> Optional[str]:
        """Request path, url-decoded, with tags removed and html escaped."""
        if self.request.request_uri is None:
            return None
        path = unquote_plus(self.request.request_uri)
        path = TAG_REGEX.sub("", path)
        return encode_entities(path).strip()

    def _referrer(self) -> Optional[SplitResult]:
        if not self.request.referrer:
            return None
        try:
            url = urlsplit(self.request.referrer.strip())
            # .port validates the netloc
            url.port
        except ValueError:
            return None
        return url

    def get_referrer_domain(self) -> Optional[str]:
        """Referrer host, unless the visitor came from this same site."""
        url = self._referrer()
        if url is None or not url.hostname:
            return None
        domain = self.get_domain_name()
        if domain and url.hostname == domain.strip("[]").lower():
            return None
        return url.hostname

    def get_referrer_path(self) -> Optional[str]:
        url = self._referrer()
        if url is None or not url.path:
            return None
        path = url.path
        if url.query:
            path += "?" + url.query
        if url.fragment:
            path += "#" + url.fragment
        return path

    # geo

    def get_country_code(self) -> Optional[str]:
        geo = self._geo_ip_info()
        return geo.country_code if geo else None

    def get_country_name(self) -> Optional[str]:
        geo = self._geo_ip_info()
        return geo.country_name if geo else None

    def _geo_ip_info(self) -> Optional[GeoLookupResult]:
        ip = self.get_visitor_ip_address()
        if not ip:
            return None
        if ip in self._geo_cache:
            return self._geo_cache[ip]

        provider = self.geo_ip_provider
        try:
            result = provider.lookup(ip)
        except Exception:
            log.warning(
                "geo ip provider %s failed for %s", type(provider).__name__, ip, exc_info=True
            )
            return None

        if result is None:
            return None

        geo = self._validate(provider, result)
        self._geo_cache[ip] = geo
        return geo

    @staticmethod
    def _validate(provider: GeoIpProvider, result: Any) -> GeoLookupResult:
        if isinstance(result, GeoLookupResult):
            code, name = result.country_code, result.country_name
        elif isinstance(result, Mapping):
            code = result.get("countryCode", result.get("country_code"))
            name = result.get("countryName", result.get("country_name"))
        else:
            code = name = None
        if not isinstance(code, str) or not isinstance(name, str) or not code or not name:
            raise InvalidProviderResult(
                f"Invalid return value from geo IP provider {type(provider).__name__}: {result!r}"
            )
        return GeoLookupResult(country_code=code, country_name=name)

    def page_view(self) -> PageView:
        """Snapshot of every signal for this request. Does at most one geo lookup."""
        geo = self._geo_ip_info()
        return PageView(
            visitor_id=self.get_visitor_id(),
            first_visit=self.is_first_visit(),
            domain=self.get_domain_name(),
            ip=self.get_visitor_ip_address(),
            path=self.get_current_path(),
            browser_name=self.get_browser_name(),
            browser_major_version=self.get_browser_major_version(),
            os_name=self.get_os_name(),
            device_type=self.get_user_device_type(),
            time_on_page=self.get_time_on_page(),
            total_time_on_site=self.get_total_time_on_site(),
            page_enter=self.is_page_enter(),
            page_exit=self.is_page_exit(),
            country_code=geo.country_code if geo else None,
            country_name=geo.country_name if geo else None,
            referrer_domain=self.get_referrer_domain(),
            referrer_path=self.get_referrer_path(),
        )

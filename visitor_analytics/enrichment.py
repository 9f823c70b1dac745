import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable
from urllib.parse import quote

import geoip2.database
import geoip2.errors
import requests

log = logging.getLogger(__name__)

DEFAULT_GEO_API_URL = "http://www.telize.com"
DEFAULT_GEO_TIMEOUT = 3.0


@dataclass(frozen=True)
class GeoLookupResult:
    country_code: str
    country_name: str


@runtime_checkable
class GeoIpProvider(Protocol):
    """Resolves an IP address to a country. None means no result."""

    def lookup(self, ip: str) -> Optional[GeoLookupResult]: ...


class HttpGeoIpProvider:
    """
    Geo lookup through a Telize-compatible web API:
    GET <base_url>/geoip/<ip> returning {"country_code": .., "country": ..}.
    Any transport, status or decoding problem is reported as no result.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_GEO_API_URL,
        timeout: float = DEFAULT_GEO_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def url_for(self, ip: str) -> str:
        return f"{self.base_url}/geoip/{quote(ip, safe=':')}"

    def lookup(self, ip: str) -> Optional[GeoLookupResult]:
        try:
            resp = self.session.get(self.url_for(ip), timeout=self.timeout)
        except requests.RequestException as e:
            log.debug("geo api request failed for %s: %s", ip, e)
            return None
        if not 200 <= resp.status_code < 300:
            log.debug("geo api returned %s for %s", resp.status_code, ip)
            return None
        try:
            data = resp.json()
        except ValueError:
            log.debug("geo api returned a non-JSON body for %s", ip)
            return None
        if not isinstance(data, dict):
            return None
        code = data.get("country_code")
        name = data.get("country")
        if not code or not name:
            return None
        return GeoLookupResult(country_code=str(code), country_name=str(name))


class MaxMindGeoIpProvider:
    """
    Geo lookup against a local MaxMind GeoLite2-City.mmdb file.
    """

    def __init__(self, mmdb_path: str, reader=None):
        self.mmdb_path = mmdb_path
        self.reader = reader if reader is not None else geoip2.database.Reader(mmdb_path)

    def lookup(self, ip: str) -> Optional[GeoLookupResult]:
        try:
            resp = self.reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None
        code = resp.country.iso_code
        name = resp.country.name
        if not code or not name:
            return None
        return GeoLookupResult(country_code=code, country_name=name)

    def close(self):
        if self.reader:
            self.reader.close()
            self.reader = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


StaticEntry = Union[GeoLookupResult, Tuple[str, str]]


class StaticGeoIpProvider:
    """Fixed ip -> country table. Records every IP it is asked about."""

    def __init__(self, table: Optional[Mapping[str, StaticEntry]] = None):
        self.table: Dict[str, GeoLookupResult] = {}
        for ip, entry in (table or {}).items():
            if not isinstance(entry, GeoLookupResult):
                entry = GeoLookupResult(*entry)
            self.table[ip] = entry
        self.calls: List[str] = []

    def lookup(self, ip: str) -> Optional[GeoLookupResult]:
        self.calls.append(ip)
        return self.table.get(ip)

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from .enrichment import (
    DEFAULT_GEO_API_URL,
    DEFAULT_GEO_TIMEOUT,
    GeoIpProvider,
    HttpGeoIpProvider,
    MaxMindGeoIpProvider,
)

ENV_PREFIX = "VISITOR_ANALYTICS_"


@dataclass(frozen=True)
class AnalyticsConfig:
    cookie_name: str = "_wva"
    session_duration: int = 1800  # seconds
    geo_api_url: str = DEFAULT_GEO_API_URL
    geo_timeout: float = DEFAULT_GEO_TIMEOUT
    geoip_db: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AnalyticsConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            cookie_name=env.get(ENV_PREFIX + "COOKIE_NAME") or defaults.cookie_name,
            session_duration=int(
                env.get(ENV_PREFIX + "SESSION_DURATION") or defaults.session_duration
            ),
            geo_api_url=env.get(ENV_PREFIX + "GEO_API_URL") or defaults.geo_api_url,
            geo_timeout=float(env.get(ENV_PREFIX + "GEO_TIMEOUT") or defaults.geo_timeout),
            geoip_db=env.get(ENV_PREFIX + "GEOIP_DB") or None,
        )

    def make_provider(self) -> GeoIpProvider:
        """Provider shared by every context built with these settings."""
        return shared_provider(self.geoip_db, self.geo_api_url, self.geo_timeout)

    def new_provider(self) -> GeoIpProvider:
        """A provider owned by the caller, who is responsible for closing it."""
        return build_provider(self.geoip_db, self.geo_api_url, self.geo_timeout)


def build_provider(geoip_db: Optional[str], geo_api_url: str, geo_timeout: float) -> GeoIpProvider:
    if geoip_db:
        return MaxMindGeoIpProvider(geoip_db)
    return HttpGeoIpProvider(geo_api_url, timeout=geo_timeout)


@lru_cache(maxsize=None)
def shared_provider(geoip_db: Optional[str], geo_api_url: str, geo_timeout: float) -> GeoIpProvider:
    return build_provider(geoip_db, geo_api_url, geo_timeout)

from visitor_analytics.config import AnalyticsConfig, shared_provider
from visitor_analytics.enrichment import HttpGeoIpProvider, MaxMindGeoIpProvider
from visitor_analytics.request import RequestContext


def test_from_environ():
    environ = {
        "HTTP_X_FORWARDED_HOST": "www.example.com",
        "SERVER_NAME": "app01",
        "HTTP_HOST": "app01:8000",
        "HTTP_CLIENT_IP": "198.51.100.4",
        "HTTP_X_FORWARDED_FOR": "198.51.100.4, 10.0.0.2",
        "REMOTE_ADDR": "10.0.0.2",
        "REQUEST_URI": "/pricing?plan=pro",
        "HTTP_REFERER": "https://duckduckgo.com/",
        "HTTP_COOKIE": "_wva=_wva.65a1b2c3d4e5f; theme=dark",
    }
    r = RequestContext.from_environ(environ)
    assert r.forwarded_host == "www.example.com"
    assert r.server_name == "app01"
    assert r.host == "app01:8000"
    assert r.client_ip == "198.51.100.4"
    assert r.forwarded_for == "198.51.100.4, 10.0.0.2"
    assert r.remote_addr == "10.0.0.2"
    assert r.request_uri == "/pricing?plan=pro"
    assert r.referrer == "https://duckduckgo.com/"
    assert r.cookies == {"_wva": "_wva.65a1b2c3d4e5f", "theme": "dark"}


def test_from_environ_rebuilds_uri_and_tolerates_missing_keys():
    r = RequestContext.from_environ({"PATH_INFO": "/docs", "QUERY_STRING": "page=2"})
    assert r.request_uri == "/docs?page=2"
    assert r.host is None
    assert r.referrer is None
    assert r.cookies == {}


def test_empty_environ():
    r = RequestContext.from_environ({})
    assert r.request_uri is None
    assert r.remote_addr is None


def test_config_defaults():
    cfg = AnalyticsConfig()
    assert cfg.cookie_name == "_wva"
    assert cfg.session_duration == 1800
    assert cfg.geo_timeout == 3.0


def test_config_from_env():
    cfg = AnalyticsConfig.from_env(
        {
            "VISITOR_ANALYTICS_COOKIE_NAME": "_va",
            "VISITOR_ANALYTICS_SESSION_DURATION": "3600",
            "VISITOR_ANALYTICS_GEO_API_URL": "http://geo.internal",
            "VISITOR_ANALYTICS_GEO_TIMEOUT": "0.5",
        }
    )
    assert cfg == AnalyticsConfig(
        cookie_name="_va",
        session_duration=3600,
        geo_api_url="http://geo.internal",
        geo_timeout=0.5,
        geoip_db=None,
    )
    assert AnalyticsConfig.from_env({}) == AnalyticsConfig()


def test_make_provider(monkeypatch):
    assert isinstance(AnalyticsConfig().make_provider(), HttpGeoIpProvider)

    opened = []

    class FakeReader:
        def __init__(self, path):
            opened.append(path)

    monkeypatch.setattr("geoip2.database.Reader", FakeReader)
    shared_provider.cache_clear()
    cfg = AnalyticsConfig(geoip_db="/var/lib/GeoLite2-City.mmdb")
    provider = cfg.make_provider()
    assert isinstance(provider, MaxMindGeoIpProvider)
    assert cfg.make_provider() is provider
    assert AnalyticsConfig(geoip_db="/var/lib/GeoLite2-City.mmdb").make_provider() is provider
    assert opened == ["/var/lib/GeoLite2-City.mmdb"]

    owned = cfg.new_provider()
    assert owned is not provider
    assert opened == ["/var/lib/GeoLite2-City.mmdb"] * 2
    shared_provider.cache_clear()


def test_from_environ_requotes_decoded_path_info():
    r = RequestContext.from_environ({"SCRIPT_NAME": "/app", "PATH_INFO": "/100%/a+b c", "QUERY_STRING": "x=1"})
    assert r.request_uri == "/app/100%25/a%2Bb%20c?x=1"
    # non-ASCII PATH_INFO arrives as latin-1 decoded bytes
    r = RequestContext.from_environ({"PATH_INFO": "/cafÃ©"})
    assert r.request_uri == "/caf%C3%A9"

#!/usr/bin/env python3
import argparse
import dataclasses
import logging
from pathlib import Path
from typing import List, Optional

from .config import AnalyticsConfig
from .context import VisitorContext
from .enrichment import MaxMindGeoIpProvider, StaticGeoIpProvider
from .report import print_human, write_json
from .request import RequestContext


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Extract visitor analytics signals from a single request and beacon."
    )
    ap.add_argument("--beacon", "-b", default="", help="Beacon JSON sent by the client")
    ap.add_argument("--cookie", default="", help="Existing visitor cookie value")
    ap.add_argument("--cookie-name", default=None, help="Visitor cookie name (default _wva)")
    ap.add_argument(
        "--session-duration", type=int, default=None, help="Cookie lifetime in seconds"
    )
    ap.add_argument("--host", default=None, help="Host header")
    ap.add_argument("--server-name", default=None, help="Server name")
    ap.add_argument("--forwarded-host", default=None, help="X-Forwarded-Host header")
    ap.add_argument("--client-ip", default=None, help="Client-IP header")
    ap.add_argument("--forwarded-for", default=None, help="X-Forwarded-For header")
    ap.add_argument("--remote-addr", default=None, help="Remote address of the connection")
    ap.add_argument("--uri", default="/", help="Raw request URI")
    ap.add_argument("--referrer", default=None, help="Referer header")
    ap.add_argument(
        "--geoip-db", default="", help="Path to MaxMind GeoLite2-City.mmdb (optional)"
    )
    ap.add_argument("--geo-api-url", default="", help="Base URL of the geo ip web API")
    ap.add_argument("--no-geo", action="store_true", help="Skip the geo ip lookup")
    ap.add_argument("--out-json", default="", help="Write the page view JSON to this path")
    ap.add_argument("--print", action="store_true", help="Print human summary")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return ap


def config_from_args(args: argparse.Namespace) -> AnalyticsConfig:
    cfg = AnalyticsConfig.from_env()
    overrides = {}
    if args.cookie_name:
        overrides["cookie_name"] = args.cookie_name
    if args.session_duration is not None:
        overrides["session_duration"] = args.session_duration
    if args.geoip_db:
        overrides["geoip_db"] = args.geoip_db
    if args.geo_api_url:
        overrides["geo_api_url"] = args.geo_api_url
    return dataclasses.replace(cfg, **overrides)


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    cfg = config_from_args(args)
    request = RequestContext(
        forwarded_host=args.forwarded_host,
        server_name=args.server_name,
        host=args.host,
        client_ip=args.client_ip,
        forwarded_for=args.forwarded_for,
        remote_addr=args.remote_addr,
        request_uri=args.uri,
        referrer=args.referrer,
        cookies={cfg.cookie_name: args.cookie} if args.cookie else {},
    )
    provider = StaticGeoIpProvider() if args.no_geo else cfg.new_provider()
    ctx = VisitorContext(request, args.beacon, geo_ip_provider=provider, config=cfg)
    page_view = ctx.page_view()
    if isinstance(provider, MaxMindGeoIpProvider):
        provider.close()

    if args.out_json:
        write_json(page_view, Path(args.out_json))
    if args.print:
        print_human(page_view)
        if ctx.cookie is not None:
            print(f"  - set cookie {ctx.cookie.name}={ctx.cookie.value}; max-age={ctx.cookie.max_age}")
    elif args.out_json:
        print(f"[+] page view for {page_view.visitor_id} written to {args.out_json}")
    else:
        write_json(page_view)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

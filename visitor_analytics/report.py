import json
import sys
from pathlib import Path
from typing import Optional, TextIO

from .context import PageView


def write_json(page_view: PageView, path: Optional[Path] = None, stream: Optional[TextIO] = None):
    """Write the page view as JSON to path, or to stream (stdout) when no path is given."""
    if path is None:
        out = stream or sys.stdout
        json.dump(page_view.to_dict(), out, indent=2, ensure_ascii=False)
        out.write("\n")
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(page_view.to_dict(), f, indent=2, ensure_ascii=False)


def _fmt(value) -> str:
    return "-" if value is None else str(value)


def print_human(page_view: PageView):
    visit = "first visit" if page_view.first_visit else "returning"
    print(f"Visitor {page_view.visitor_id} ({visit})")
    print(f"  - page: {_fmt(page_view.domain)}{_fmt(page_view.path)}")
    state = "enter" if page_view.page_enter else "exit" if page_view.page_exit else "-"
    print(f"  - state: {state}, time on page: {_fmt(page_view.time_on_page)}")
    print(
        f"  - device: {_fmt(page_view.device_type)}, {_fmt(page_view.os_name)}, "
        f"{_fmt(page_view.browser_name)} {_fmt(page_view.browser_major_version)}"
    )
    print(
        f"  - ip: {_fmt(page_view.ip)} "
        f"({_fmt(page_view.country_code)} {_fmt(page_view.country_name)})"
    )
    if page_view.referrer_domain or page_view.referrer_path:
        print(f"  - referrer: {_fmt(page_view.referrer_domain)}{_fmt(page_view.referrer_path)}")

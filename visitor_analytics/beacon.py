import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)

DEVICE_PROP = "deviceProperties"
BROWSER_NAME = "browserName"
BROWSER_MAJOR_VERSION = "browserMajorVersion"
OS_NAME = "os"
DEVICE_TYPE = "deviceType"
TIME_ON_PAGE = "timeOnPage"
TOTAL_TIME_ON_SITE = "totalTimeOnSite"
PAGE_STATE = "pageState"  # enter or exit

PAGE_ENTER = "enter"
PAGE_EXIT = "exit"


@dataclass(frozen=True)
class Beacon:
    browser_name: Optional[str] = None
    browser_major_version: Optional[Any] = None
    os_name: Optional[str] = None
    device_type: Optional[str] = None
    time_on_page: Optional[Any] = None
    total_time_on_site: Optional[Any] = None
    page_state: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self.__dict__.values())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Beacon":
        device = data.get(DEVICE_PROP)
        if not isinstance(device, dict):
            device = {}
        return cls(
            browser_name=device.get(BROWSER_NAME),
            browser_major_version=device.get(BROWSER_MAJOR_VERSION),
            os_name=device.get(OS_NAME),
            device_type=device.get(DEVICE_TYPE),
            time_on_page=data.get(TIME_ON_PAGE),
            total_time_on_site=data.get(TOTAL_TIME_ON_SITE),
            page_state=data.get(PAGE_STATE),
        )


def parse_beacon(raw: Optional[str]) -> Beacon:
    """Decode the client beacon. Anything unreadable gives an empty Beacon."""
    if not raw or not raw.strip():
        return Beacon()
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        log.debug("discarding malformed beacon: %.80r", raw)
        return Beacon()
    if not isinstance(data, dict):
        return Beacon()
    return Beacon.from_dict(data)

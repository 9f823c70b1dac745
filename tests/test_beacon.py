from visitor_analytics.beacon import Beacon, parse_beacon


def test_parse_full_beacon():
    raw = (
        '{"deviceProperties": {"browserName": "Firefox", "browserMajorVersion": 121,'
        ' "os": "Linux", "deviceType": "desktop"},'
        ' "timeOnPage": 12, "totalTimeOnSite": 300, "pageState": "enter"}'
    )
    b = parse_beacon(raw)
    assert b.browser_name == "Firefox"
    assert b.browser_major_version == 121
    assert b.os_name == "Linux"
    assert b.device_type == "desktop"
    assert b.time_on_page == 12
    assert b.total_time_on_site == 300
    assert b.page_state == "enter"
    assert not b.is_empty


def test_parse_partial_beacon():
    b = parse_beacon('{"deviceProperties":{"browserName":"Chrome"},"timeOnPage":42,"pageState":"exit"}')
    assert b.browser_name == "Chrome"
    assert b.os_name is None
    assert b.device_type is None
    assert b.time_on_page == 42
    assert b.page_state == "exit"


def test_parse_empty_and_malformed():
    """Unreadable beacons decode to an empty Beacon instead of raising"""
    for raw in ["", "   ", None, "{not json", "[1, 2, 3]", '"text"', "null"]:
        b = parse_beacon(raw)
        assert b == Beacon()
        assert b.is_empty


def test_device_properties_not_an_object():
    b = parse_beacon('{"deviceProperties": "Chrome", "pageState": "enter"}')
    assert b.browser_name is None
    assert b.page_state == "enter"

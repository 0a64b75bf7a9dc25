"""Tests for caller identifier extraction."""

from starlette.datastructures import Headers

from throttler.core.identifier import identifier_of


def _headers(**values: str) -> Headers:
    return Headers({name.replace("_", "-"): value for name, value in values.items()})


def test_first_forwarded_address() -> None:
    assert identifier_of(_headers(x_forwarded_for="192.168.1.1, 10.0.0.1")) == "192.168.1.1"


def test_single_forwarded_address() -> None:
    assert identifier_of(_headers(x_forwarded_for="203.0.113.50")) == "203.0.113.50"


def test_forwarded_address_is_trimmed() -> None:
    assert identifier_of(_headers(x_forwarded_for="  192.168.1.1  ,  10.0.0.1  ")) == "192.168.1.1"


def test_real_ip_when_no_forwarded_for() -> None:
    assert identifier_of(_headers(x_real_ip="10.20.30.40")) == "10.20.30.40"


def test_forwarded_for_wins_over_real_ip() -> None:
    assert identifier_of(_headers(x_forwarded_for="1.2.3.4", x_real_ip="5.6.7.8")) == "1.2.3.4"


def test_user_agent_when_no_address_headers() -> None:
    assert identifier_of(_headers(user_agent="Mozilla/5.0 Test Browser")) == "Mozilla/5.0 Test Browser"


def test_unknown_when_nothing_identifies_the_caller() -> None:
    assert identifier_of(Headers({})) == "unknown"


def test_empty_forwarded_entry_degrades_to_next_source() -> None:
    assert identifier_of(_headers(x_forwarded_for=" , 10.0.0.1", x_real_ip="5.6.7.8")) == "5.6.7.8"


def test_header_lookup_is_case_insensitive() -> None:
    headers = Headers({"X-Forwarded-For": "9.9.9.9"})

    assert identifier_of(headers) == "9.9.9.9"


def test_plain_mapping_is_accepted() -> None:
    assert identifier_of({"x-real-ip": "10.0.0.7"}) == "10.0.0.7"

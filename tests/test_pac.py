import pytest

from pacroute.errors import EmptyPolicyError
from pacroute.pac import DIRECT, find_proxy_for_host, prepare_blocklist, render_pac_script


def test_render_embeds_sorted_domains_and_endpoint() -> None:
    pac = render_pac_script(["b.com", "a.com", "c.com", "a.com"], "proxy.example:443")
    assert "function FindProxyForURL(url, host)" in pac
    assert 'let domains = ["a.com", "b.com", "c.com"];' in pac
    assert "return 'HTTPS proxy.example:443;';" in pac
    assert "return 'DIRECT';" in pac


def test_render_rejects_empty_blocklist() -> None:
    with pytest.raises(EmptyPolicyError):
        render_pac_script([], "proxy.example:443")


def test_render_rejects_endpoint_that_breaks_the_script() -> None:
    with pytest.raises(ValueError):
        render_pac_script(["a.com"], "evil';alert(1);'")


def test_subdomain_routes_through_proxy() -> None:
    blocklist = prepare_blocklist(["b.com", "a.com", "c.com"])
    assert find_proxy_for_host(blocklist, "sub.a.com", "proxy.example:443") == (
        "HTTPS proxy.example:443;"
    )
    assert find_proxy_for_host(blocklist, "a.com.", "proxy.example:443") == (
        "HTTPS proxy.example:443;"
    )
    assert find_proxy_for_host(blocklist, "d.com", "proxy.example:443") == DIRECT


def test_third_level_blocklist_entries_never_match() -> None:
    blocklist = prepare_blocklist(["news.example.co"])
    assert find_proxy_for_host(blocklist, "news.example.co", "p:1") == DIRECT


def test_render_keeps_unicode_domains_readable() -> None:
    pac = render_pac_script(["пример.рф", "a.com"], "proxy.example:443")
    assert 'let domains = ["a.com", "пример.рф"];' in pac
    assert "\\u" not in pac

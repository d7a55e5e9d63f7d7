"""Tests for the article fetcher — SSRF guard, scheme validation, HTML reduction."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from inkwell.ingest.web import SsrfError, _RedirectLimit, check_url, fetch_article, html_to_text

# ------------------------------------------------------------------
# Scheme validation
# ------------------------------------------------------------------


def _patch_getaddrinfo(ip: str):
    """Return a context manager that makes getaddrinfo resolve to *ip*."""
    addr_info = [(None, None, None, None, (ip, 0))]
    return patch("inkwell.ingest.web.socket.getaddrinfo", return_value=addr_info)


@pytest.mark.parametrize("url", ["https://example.com/page", "http://example.com/page"])
def test_scheme_http_and_https_ok(url):
    with _patch_getaddrinfo("93.184.216.34"):
        check_url(url)  # no exception


@pytest.mark.parametrize("url", ["ftp://example.com", "file:///etc/passwd"])
def test_other_schemes_raise(url):
    with pytest.raises(ValueError, match="scheme"):
        check_url(url)


def test_missing_hostname_raises():
    with pytest.raises(ValueError, match="hostname"):
        check_url("https://")


def test_dns_failure_raises_value_error():
    import socket

    with patch("inkwell.ingest.web.socket.getaddrinfo", side_effect=socket.gaierror("nope")):
        with pytest.raises(ValueError, match="DNS"):
            check_url("https://no-such-host.invalid/")


# ------------------------------------------------------------------
# SSRF guard
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "ip",
    ["127.0.0.1", "10.0.0.1", "172.16.0.1", "192.168.1.1", "169.254.169.254", "::1", "0.0.0.0"],
)
def test_non_public_addresses_blocked(ip):
    with _patch_getaddrinfo(ip):
        with pytest.raises(SsrfError, match="non-public address"):
            check_url("http://internal.example/")


def test_ssrf_error_is_a_value_error():
    assert issubclass(SsrfError, ValueError)


def test_redirect_to_private_address_blocked():
    handler = _RedirectLimit(3)
    req = MagicMock(full_url="https://example.com/")
    with _patch_getaddrinfo("127.0.0.1"):
        with pytest.raises(SsrfError):
            handler.redirect_request(req, None, 302, "Found", {}, "http://localhost/admin")


def test_too_many_redirects():
    handler = _RedirectLimit(0)
    req = MagicMock(full_url="https://example.com/")
    with pytest.raises(RuntimeError, match="Too many redirects"):
        handler.redirect_request(req, None, 302, "Found", {}, "https://example.com/next")


# ------------------------------------------------------------------
# html_to_text()
# ------------------------------------------------------------------


def test_html_converted_to_text_with_title():
    html = (
        "<html><head><title>Deep Work</title></head>"
        "<body><p>Focus is a skill.</p></body></html>"
    )
    title, text = html_to_text(html)
    assert title == "Deep Work"
    assert "Focus is a skill." in text
    assert "<" not in text
    assert "Deep Work" not in text


def test_html_boilerplate_removed():
    html = (
        "<html><body><nav>Menu</nav><script>alert('x')</script>"
        "<p>Content.</p><footer>Copyright</footer></body></html>"
    )
    title, text = html_to_text(html)
    assert title is None
    assert "Content." in text
    for noise in ("Menu", "alert", "Copyright"):
        assert noise not in text


def test_html_links_reduced_to_their_text():
    _, text = html_to_text('<p>Read <a href="https://x.test/">the study</a> first.</p>')
    assert "the study" in text
    assert "https://x.test" not in text


# ------------------------------------------------------------------
# fetch_article()
# ------------------------------------------------------------------


def test_fetch_article_html():
    body = b"<html><head><title>T</title></head><body><p>Body text.</p></body></html>"
    with _patch_getaddrinfo("93.184.216.34"), patch(
        "inkwell.ingest.web._download", return_value=(body, "text/html")
    ):
        article = fetch_article("https://example.com/post")
    assert article.url == "https://example.com/post"
    assert article.title == "T"
    assert article.text == "Body text."


def test_fetch_article_plain_text():
    with _patch_getaddrinfo("93.184.216.34"), patch(
        "inkwell.ingest.web._download", return_value=(b"  Just text.\n", "text/plain")
    ):
        article = fetch_article("https://example.com/notes.txt")
    assert article.title is None
    assert article.text == "Just text."


def test_fetch_article_checks_url_before_download():
    with _patch_getaddrinfo("10.1.2.3"), patch("inkwell.ingest.web._download") as download:
        with pytest.raises(SsrfError):
            fetch_article("https://intranet.example/")
    download.assert_not_called()

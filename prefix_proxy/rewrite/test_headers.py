"""
Tests for Location and Set-Cookie rewriting.
"""

from dataclasses import replace

import httpx
import pytest

from prefix_proxy.rewrite.headers import (
    rewrite_headers,
    rewrite_location,
    rewrite_set_cookie,
)

PREFIX = "/hemanta/proxy"
PUBLIC = "https://www.mydomain.com"


class TestRewriteLocation:
    """Test redirect Location rewriting."""

    def test_absolute_url_to_upstream(self, rewrite_context):
        """Test the documented redirect example."""
        result = rewrite_location("https://vritjobs.com/jobs/42", rewrite_context)

        assert result == f"{PUBLIC}{PREFIX}/jobs/42"

    def test_absolute_url_with_query_and_fragment(self, rewrite_context):
        location = "https://vritjobs.com/callback?code=abc&state=xyz#done"

        result = rewrite_location(location, rewrite_context)

        assert result == f"{PUBLIC}{PREFIX}/callback?code=abc&state=xyz#done"

    def test_only_leading_origin_is_replaced(self, rewrite_context):
        location = "https://vritjobs.com/login?next=https://vritjobs.com/jobs"

        result = rewrite_location(location, rewrite_context)

        assert result == f"{PUBLIC}{PREFIX}/login?next=https://vritjobs.com/jobs"

    def test_bare_origin(self, rewrite_context):
        assert rewrite_location("https://vritjobs.com", rewrite_context) == f"{PUBLIC}{PREFIX}/"

    def test_root_relative(self, rewrite_context):
        result = rewrite_location("/login?next=/jobs", rewrite_context)

        assert result == f"{PREFIX}/login?next=/jobs"

    def test_protocol_relative_to_upstream(self, rewrite_context):
        result = rewrite_location("//vritjobs.com/jobs", rewrite_context)

        assert result == f"//www.mydomain.com{PREFIX}/jobs"

    @pytest.mark.parametrize(
        "location",
        [
            "https://accounts.example.com/oauth/authorize",
            "https://vritjobs.com.evil.org/jobs",
            "//cdn.example.com/file",
            "next-page",
            "../up",
            "",
        ],
    )
    def test_unchanged(self, rewrite_context, location):
        assert rewrite_location(location, rewrite_context) == location

    def test_already_prefixed(self, rewrite_context):
        assert rewrite_location(f"{PREFIX}/jobs", rewrite_context) == f"{PREFIX}/jobs"

    def test_idempotent(self, rewrite_context):
        once = rewrite_location("https://vritjobs.com/jobs/42", rewrite_context)

        assert rewrite_location(once, rewrite_context) == once

    def test_without_prefix(self, no_prefix_context):
        assert rewrite_location("/jobs", no_prefix_context) == "/jobs"
        assert (
            rewrite_location("https://vritjobs.com/jobs", no_prefix_context)
            == "http://localhost:7070/jobs"
        )


class TestRewriteSetCookie:
    """Test Set-Cookie rewriting."""

    def test_documented_example(self, rewrite_context):
        result = rewrite_set_cookie("session=abc; Domain=vritjobs.com; Path=/", rewrite_context)

        assert result == f"session=abc; Domain=www.mydomain.com; Path={PREFIX}/; Secure"

    def test_leading_dot_domain(self, rewrite_context):
        result = rewrite_set_cookie("a=b; Domain=.vritjobs.com; Path=/", rewrite_context)

        assert f"Domain=www.mydomain.com; Path={PREFIX}/" in result

    def test_foreign_domain_kept(self, rewrite_context):
        result = rewrite_set_cookie("a=b; Domain=other.com", rewrite_context)

        assert result == f"a=b; Domain=other.com; Path={PREFIX}/; Secure"

    def test_missing_path_added(self, rewrite_context):
        result = rewrite_set_cookie("id=1; HttpOnly", rewrite_context)

        assert result == f"id=1; HttpOnly; Path={PREFIX}/; Secure"

    def test_specific_path_kept(self, rewrite_context):
        result = rewrite_set_cookie("token=xyz; Path=/api; Secure", rewrite_context)

        assert result == "token=xyz; Path=/api; Secure"

    def test_attribute_names_are_case_insensitive(self, rewrite_context):
        result = rewrite_set_cookie("a=b; domain=VRITJOBS.COM; path=/; secure", rewrite_context)

        assert result == f"a=b; Domain=www.mydomain.com; Path={PREFIX}/; secure"

    def test_value_containing_secure_still_gets_flag(self, rewrite_context):
        """Test Secure is detected as an attribute, not as a substring."""
        result = rewrite_set_cookie("mode=Secure-Off; Path=/", rewrite_context)

        assert result.endswith("; Secure")

    def test_expires_with_comma_preserved(self, rewrite_context):
        cookie = "a=b; Expires=Wed, 21 Oct 2015 07:28:00 GMT; Path=/"

        result = rewrite_set_cookie(cookie, rewrite_context)

        assert "Expires=Wed, 21 Oct 2015 07:28:00 GMT" in result

    def test_idempotent_with_single_secure(self, rewrite_context):
        cookie = "session=abc; Domain=vritjobs.com; Path=/"

        once = rewrite_set_cookie(cookie, rewrite_context)
        twice = rewrite_set_cookie(once, rewrite_context)

        assert twice == once
        assert twice.count("Secure") == 1

    def test_plain_http_public_side(self, no_prefix_context):
        """Test no Secure flag over HTTP and a port-free Domain."""
        result = rewrite_set_cookie("a=b; Domain=vritjobs.com; Path=/", no_prefix_context)

        assert result == "a=b; Domain=localhost; Path=/"

    def test_secure_cookies_disabled(self, rewrite_context):
        ctx = replace(rewrite_context, secure_cookies=False)

        result = rewrite_set_cookie("a=b; Path=/", ctx)

        assert result == f"a=b; Path={PREFIX}/"

    def test_empty_cookie(self, rewrite_context):
        assert rewrite_set_cookie("", rewrite_context) == ""


class TestRewriteHeaders:
    """Test rewriting a complete header set."""

    def test_all_set_cookie_values_rewritten(self, rewrite_context):
        headers = httpx.Headers(
            [
                ("content-type", "text/html"),
                ("set-cookie", "a=1; Path=/"),
                ("set-cookie", "b=2; Domain=vritjobs.com"),
            ]
        )

        result = rewrite_headers(headers, rewrite_context)

        assert result.get_list("set-cookie") == [
            f"a=1; Path={PREFIX}/; Secure",
            f"b=2; Domain=www.mydomain.com; Path={PREFIX}/; Secure",
        ]
        assert result["content-type"] == "text/html"

    def test_location_rewritten(self, rewrite_context):
        headers = httpx.Headers({"location": "https://vritjobs.com/jobs/42"})

        result = rewrite_headers(headers, rewrite_context)

        assert result["location"] == f"{PUBLIC}{PREFIX}/jobs/42"

    def test_input_not_mutated(self, rewrite_context):
        headers = httpx.Headers(
            {"location": "/jobs", "set-cookie": "a=1; Path=/"}
        )

        rewrite_headers(headers, rewrite_context)

        assert headers["location"] == "/jobs"
        assert headers["set-cookie"] == "a=1; Path=/"

    def test_unrelated_headers_untouched(self, rewrite_context):
        headers = httpx.Headers(
            {"location": "https://example.com/", "content-type": "image/png", "x-custom": "1"}
        )

        result = rewrite_headers(headers, rewrite_context)

        assert result.multi_items() == headers.multi_items()

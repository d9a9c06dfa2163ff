"""Tests for error page selection."""

import pytest

from s3proxy.config import ProxyConfig
from s3proxy.error_pages import ErrorAction, ErrorDecision, ErrorPageResolver
from s3proxy.fetcher import ObjectFetcher
from s3proxy.storage.memory import MemoryObjectStore


def _resolver(**overrides) -> ErrorPageResolver:
    config = ProxyConfig(bucket="b", **overrides)
    return ErrorPageResolver(config, ObjectFetcher(MemoryObjectStore(), config))


class TestDetermineAction:
    """Tests for ErrorPageResolver.determine_action()."""

    def test_nothing_configured(self):
        assert _resolver().determine_action(404) == ErrorDecision(ErrorAction.STATUS_ONLY, 404)

    def test_status_page(self):
        decision = _resolver(error_pages={404: "/404.html"}).determine_action(404)
        assert decision == ErrorDecision(ErrorAction.SERVE_FALLBACK, 404, "/404.html")

    def test_status_page_wins_over_default(self):
        resolver = _resolver(error_pages={404: "/404.html"}, default_error_page="/error.html")
        assert resolver.determine_action(404).key == "/404.html"
        assert resolver.determine_action(500).key == "/error.html"

    def test_default_page(self):
        decision = _resolver(default_error_page="/error.html").determine_action(403)
        assert decision == ErrorDecision(ErrorAction.SERVE_FALLBACK, 403, "/error.html")

    @pytest.mark.parametrize("value", ["pass_through", "PASS_THROUGH", "Pass_Through"])
    def test_pass_through(self, value):
        decision = _resolver(error_pages={404: value}).determine_action(404)
        assert decision == ErrorDecision(ErrorAction.PASS_THROUGH, 404)

    def test_default_pass_through(self):
        decision = _resolver(default_error_page="pass_through").determine_action(503)
        assert decision.action is ErrorAction.PASS_THROUGH

    @pytest.mark.parametrize("status", [304, 412, 416])
    def test_conditional_statuses_are_bare(self, status):
        resolver = _resolver(
            error_pages={status: "/page.html"}, default_error_page="pass_through"
        )
        assert resolver.determine_action(status) == ErrorDecision(
            ErrorAction.STATUS_ONLY, status
        )

    def test_relative_key_made_absolute(self):
        decision = _resolver(error_pages={404: "errors/404.html"}).determine_action(404)
        assert decision.key == "/errors/404.html"

    def test_empty_status_entry_overrides_default(self):
        resolver = _resolver(error_pages={404: ""}, default_error_page="/error.html")
        assert resolver.determine_action(404) == ErrorDecision(ErrorAction.STATUS_ONLY, 404)
        assert resolver.determine_action(500).key == "/error.html"

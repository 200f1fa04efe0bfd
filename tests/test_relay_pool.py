"""
Tests for relay endpoints, selection, fetch-through and health checks
"""
import json

import pytest

from dashboard_data.cancellation import CancelToken
from dashboard_data.errors import FetchCancelled, NetworkError, ServerError
from dashboard_data.relay import (
    PROBE_TARGET,
    RelayEndpoint,
    RelayPool,
    RelayStyle,
    build_endpoints,
    infer_style,
)

from conftest import FALLBACK_ENVELOPE, FALLBACK_RAW, PRIMARY, healthy

TARGET = "https://example.com/feed.xml?lang=en"


# =============================================================================
# Endpoint conventions
# =============================================================================

class TestEndpoints:

    def test_style_inferred_from_known_relays(self):
        assert infer_style("https://corsproxy.io/?") is RelayStyle.ENCODED_QUERY
        assert infer_style("https://api.allorigins.win/get?url=") is RelayStyle.JSON_ENVELOPE
        assert infer_style("https://cors-anywhere.herokuapp.com/") is RelayStyle.RAW_PREFIX
        assert infer_style("https://thingproxy.freeboard.io/fetch/") is RelayStyle.RAW_PREFIX

    def test_encoded_query_wrap(self):
        endpoint = RelayEndpoint.from_url(PRIMARY)
        assert endpoint.wrap(TARGET) == (
            "https://corsproxy.io/?https%3A%2F%2Fexample.com%2Ffeed.xml%3Flang%3Den"
        )

    def test_raw_prefix_wrap(self):
        endpoint = RelayEndpoint.from_url(FALLBACK_RAW)
        assert endpoint.wrap(TARGET) == FALLBACK_RAW + TARGET

    def test_json_envelope_unwrap(self):
        endpoint = RelayEndpoint.from_url(FALLBACK_ENVELOPE)
        assert endpoint.wrap(TARGET).startswith(FALLBACK_ENVELOPE + "https%3A%2F%2F")
        assert endpoint.unwrap(json.dumps({"contents": "<rss/>", "status": {}})) == "<rss/>"

    def test_json_envelope_passes_through_non_envelope(self):
        endpoint = RelayEndpoint.from_url(FALLBACK_ENVELOPE)
        assert endpoint.unwrap("<rss/>") == "<rss/>"
        assert endpoint.unwrap('{"other": 1}') == '{"other": 1}'

    def test_other_styles_do_not_unwrap(self):
        body = json.dumps({"contents": "x"})
        assert RelayEndpoint.from_url(PRIMARY).unwrap(body) == body

    def test_build_endpoints_keeps_order_and_drops_duplicates(self):
        endpoints = build_endpoints(PRIMARY, [FALLBACK_RAW, PRIMARY, "", FALLBACK_ENVELOPE])
        assert [e.url_template for e in endpoints] == [PRIMARY, FALLBACK_RAW, FALLBACK_ENVELOPE]
        assert all(not e.healthy for e in endpoints)

    def test_pool_requires_endpoints(self, http):
        with pytest.raises(ValueError):
            RelayPool([], http)


# =============================================================================
# Selection
# =============================================================================

class TestSelection:

    def test_primary_when_healthy(self, relay_pool):
        healthy(relay_pool, PRIMARY, FALLBACK_RAW, FALLBACK_ENVELOPE)
        assert relay_pool.select_endpoint().url_template == PRIMARY

    def test_first_healthy_fallback_when_primary_unhealthy(self, relay_pool):
        healthy(relay_pool, FALLBACK_ENVELOPE, FALLBACK_RAW)
        assert relay_pool.select_endpoint().url_template == FALLBACK_RAW

    def test_primary_as_last_resort(self, relay_pool):
        healthy(relay_pool)
        assert relay_pool.select_endpoint().url_template == PRIMARY
        assert relay_pool.has_healthy_endpoint() is False

    def test_exclude_skips_tried_endpoints(self, relay_pool):
        healthy(relay_pool, PRIMARY, FALLBACK_RAW, FALLBACK_ENVELOPE)
        chosen = relay_pool.select_endpoint(exclude=[PRIMARY, FALLBACK_RAW])
        assert chosen.url_template == FALLBACK_ENVELOPE

    def test_none_when_primary_excluded_and_nothing_healthy(self, relay_pool):
        healthy(relay_pool)
        assert relay_pool.select_endpoint(exclude=[PRIMARY]) is None

    def test_endpoints_are_snapshots(self, relay_pool):
        snapshot = relay_pool.endpoints
        snapshot[0].healthy = True
        assert relay_pool.has_healthy_endpoint() is False


# =============================================================================
# Fetching through a relay
# =============================================================================

class TestFetchThrough:

    def test_success_marks_healthy_and_unwraps(self, relay_pool, http):
        envelope = RelayEndpoint.from_url(FALLBACK_ENVELOPE)
        http.reply(envelope.wrap(TARGET), json.dumps({"contents": "<rss>ok</rss>"}))
        body = relay_pool.fetch_through(envelope, TARGET)
        assert body == "<rss>ok</rss>"
        snapshot = {s["url"]: s for s in relay_pool.health_snapshot()}
        assert snapshot[FALLBACK_ENVELOPE]["healthy"] is True

    def test_failure_marks_unhealthy_immediately(self, relay_pool, http):
        healthy(relay_pool, PRIMARY)
        primary = relay_pool.primary
        http.reply(primary.wrap(TARGET), ServerError(primary.wrap(TARGET), 502))
        with pytest.raises(ServerError):
            relay_pool.fetch_through(primary, TARGET)
        assert relay_pool.has_healthy_endpoint() is False

    def test_cancelled_fetch_leaves_health_alone(self, relay_pool, http):
        healthy(relay_pool, PRIMARY)
        token = CancelToken()
        token.cancel("widget disposed")
        with pytest.raises(FetchCancelled):
            relay_pool.fetch_through(relay_pool.primary, TARGET, cancel_token=token)
        assert relay_pool.select_endpoint().url_template == PRIMARY
        assert relay_pool.has_healthy_endpoint() is True

    def test_fetch_through_best_relay_uses_selection(self, relay_pool, http):
        healthy(relay_pool, FALLBACK_RAW)
        http.reply(FALLBACK_RAW + TARGET, "<rss/>")
        body, endpoint = relay_pool.fetch_through_best_relay(TARGET)
        assert body == "<rss/>"
        assert endpoint.url_template == FALLBACK_RAW

    def test_fetch_through_best_relay_is_single_shot(self, relay_pool, http):
        healthy(relay_pool, FALLBACK_RAW, FALLBACK_ENVELOPE)
        with pytest.raises(NetworkError):
            relay_pool.fetch_through_best_relay(TARGET)
        assert http.urls_called() == [FALLBACK_RAW + TARGET]


# =============================================================================
# Health checks
# =============================================================================

class TestHealthChecks:

    def test_check_health_probes_every_endpoint(self, relay_pool, http):
        http.probe_results = {PRIMARY: False, FALLBACK_RAW: True, FALLBACK_ENVELOPE: True}
        results = relay_pool.check_health()
        assert results == {PRIMARY: False, FALLBACK_RAW: True, FALLBACK_ENVELOPE: True}
        assert sorted(http.probes) == sorted(
            RelayEndpoint.from_url(t).wrap(PROBE_TARGET) for t in (PRIMARY, FALLBACK_RAW, FALLBACK_ENVELOPE)
        )
        assert relay_pool.select_endpoint().url_template == FALLBACK_RAW

    def test_health_snapshot_records_check_time(self, relay_pool, http, clock):
        http.probe_results = {PRIMARY: True}
        relay_pool.check_health()
        snapshot = relay_pool.health_snapshot()
        assert snapshot[0]["primary"] is True
        assert snapshot[0]["healthy"] is True
        assert snapshot[0]["last_checked"] == clock.now().isoformat()

    def test_start_checks_immediately_then_every_interval(self, relay_pool, http, scheduler):
        http.probe_results = {PRIMARY: True}
        relay_pool.start(scheduler, interval_seconds=900)
        assert len(http.probes) == 3

        scheduler.advance(899)
        assert len(http.probes) == 3
        scheduler.advance(1)
        assert len(http.probes) == 6

    def test_start_is_idempotent_and_stop_cancels(self, relay_pool, http, scheduler):
        relay_pool.start(scheduler, interval_seconds=900)
        relay_pool.start(scheduler, interval_seconds=900)
        assert len(scheduler.active_tasks) == 1
        relay_pool.stop()
        assert scheduler.active_tasks == []
        scheduler.advance(1800)
        assert len(http.probes) == 3

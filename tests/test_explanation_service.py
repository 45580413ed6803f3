"""
Tests for the explanation service: caching, tier fallback, request replacement.

Run with: pytest tests/test_explanation_service.py -v
"""

import asyncio
from unittest.mock import Mock, patch

import pytest
import requests

from conftest import make_poem
from explanation_service import (
    CANCELLED_ERROR,
    ExplanationCache,
    ExplanationService,
    parse_remote_explanation,
)
from models import Explanation, ExplanationEntry


def remote_service(**kwargs) -> ExplanationService:
    return ExplanationService(url="http://server.test/explain", auth_token="token", **kwargs)


class TestExplanationCache:
    """Tests for eviction and change notification."""

    def test_evicts_oldest_by_timestamp(self):
        cache = ExplanationCache(max_entries=2)
        cache.set((1, "fa"), ExplanationEntry(timestamp=30))
        cache.set((2, "fa"), ExplanationEntry(timestamp=10))
        cache.set((3, "fa"), ExplanationEntry(timestamp=20))

        assert len(cache) == 2
        assert (2, "fa") not in cache
        assert (1, "fa") in cache and (3, "fa") in cache

    def test_default_keeps_fifteen_entries(self):
        cache = ExplanationCache()
        assert cache.max_entries == 15

        for poem_id in range(20):
            cache.set((poem_id, "fa"), ExplanationEntry(timestamp=poem_id))

        assert len(cache) == 15
        assert (4, "fa") not in cache
        assert (5, "fa") in cache

    def test_notifies_subscribers(self):
        cache = ExplanationCache()
        changes = []
        unsubscribe = cache.subscribe(lambda: changes.append(len(cache)))

        cache.set((1, "fa"), ExplanationEntry())
        cache.clear()
        unsubscribe()
        cache.set((2, "fa"), ExplanationEntry())

        assert changes == [1, 0]


class TestParseRemoteExplanation:
    """Tests for parsing loosely typed server responses."""

    def test_object_fields_are_serialized(self):
        """Objects in string fields become JSON text instead of failing."""
        data = {
            "explanation": {
                "generalMeaning": {"text": "معنا"},
                "mainThemes": ["عشق", "عرفان"],
                "imagerySymbols": "نماد",
                "lineByLine": [{"original": "بیت", "meaning": {"a": 1}}, "plain"],
                "fullTafsir": {"meta": {}},
            }
        }

        explanation = parse_remote_explanation(data)

        assert explanation.general_meaning == '{"text": "معنا"}'
        assert explanation.main_themes == '["عشق", "عرفان"]'
        assert explanation.line_by_line[0].meaning == '{"a": 1}'
        assert explanation.line_by_line[1].meaning == "plain"
        assert explanation.full_tafsir == {"meta": {}}
        assert explanation.source == "remote"

    def test_comprehensive_only_response(self):
        data = {"explanation": {"overall_meaning": {"paragraph": "پاراگراف"}, "per_beyt": []}}
        assert parse_remote_explanation(data).general_meaning == "پاراگراف"

    @pytest.mark.parametrize("data", [None, {}, {"explanation": "text"}, {"explanation": {}}])
    def test_rejects_unusable(self, data):
        with pytest.raises(ValueError):
            parse_remote_explanation(data)


class TestExplain:
    """Tests for the explain flow."""

    def test_remote_success_is_cached(self):
        """A settled entry is served from the cache without another request."""
        service = remote_service()
        poem = make_poem(poem_id=5)
        reply = Mock(status_code=200)
        reply.raise_for_status.return_value = None
        reply.json.return_value = {"explanation": {"generalMeaning": "معنا", "mainThemes": "عشق", "lineByLine": []}}

        async def run():
            first = await service.explain(poem, "fa")
            second = await service.explain(poem, "fa")
            return first, second

        with patch("explanation_service.requests.post", return_value=reply) as post:
            first, second = asyncio.run(run())

        assert first is second
        assert first.is_success
        assert first.data.source == "remote"
        assert post.call_count == 1

        kwargs = post.call_args.kwargs
        assert kwargs["json"]["language"] == "fa"
        assert kwargs["json"]["poem"]["id"] == 5
        assert kwargs["headers"]["Authorization"] == "Bearer token"

    def test_force_refresh_bypasses_cache(self):
        service = ExplanationService(url="")
        poem = make_poem()

        async def run():
            first = await service.explain(poem, "fa")
            second = await service.explain(poem, "fa", force_refresh=True)
            return first, second

        first, second = asyncio.run(run())
        assert first is not second
        assert service.cache.get((poem.id, "fa")) is second

    def test_remote_failure_falls_back_to_local(self):
        service = remote_service()
        with patch("explanation_service.requests.post", side_effect=requests.exceptions.ConnectionError("down")):
            entry = asyncio.run(service.explain(make_poem(), "en"))

        assert entry.is_success
        assert entry.data.source == "local"

    def test_offline_skips_remote(self):
        service = ExplanationService(url="")
        with patch("explanation_service.requests.post") as post:
            entry = asyncio.run(service.explain(make_poem(), "fa"))

        post.assert_not_called()
        assert entry.data.source == "local"

    def test_both_tiers_fail(self):
        """When the local generator also fails the entry carries the error."""
        service = ExplanationService(url="")
        with patch("explanation_service.generate_local_explanation", side_effect=RuntimeError("broken")):
            entry = asyncio.run(service.explain(make_poem(), "fa"))

        assert entry.error == "broken"
        assert not entry.loading
        assert service.cache.get((1, "fa")) is entry

    def test_loading_state_written_first(self):
        service = ExplanationService(url="")
        states = []
        service.cache.subscribe(lambda: states.append(service.cache.get((1, "fa")).loading))

        asyncio.run(service.explain(make_poem(), "fa"))
        assert states == [True, False]

    def test_second_request_supersedes_first(self):
        """The first call is cancelled and both callers get the second call's entry."""
        service = ExplanationService(url="")
        service.offline = False
        started = []
        finished = []

        async def fake_remote(poem, language):
            call = len(started)
            started.append(call)
            await asyncio.sleep(0.05)
            finished.append(call)
            return Explanation(general_meaning=f"call {call}", main_themes="t", source="remote")

        poem = make_poem()

        async def run():
            first = asyncio.ensure_future(service.explain(poem, "fa"))
            await asyncio.sleep(0.01)
            second = await service.explain(poem, "fa", force_refresh=True)
            return await first, second

        with patch.object(service, "_fetch_remote", side_effect=fake_remote):
            first, second = asyncio.run(run())

        assert started == [0, 1]
        assert finished == [1]
        assert first is second
        assert second.data.general_meaning == "call 1"
        assert service.cache.get((poem.id, "fa")) is second
        assert len(service.active) == 0

    def test_cancel_all_is_quiet(self):
        """Torn-down requests resolve to an uncached cancelled entry."""
        service = ExplanationService(url="")
        service.offline = False

        async def slow_remote(poem, language):
            await asyncio.sleep(1)

        async def run():
            pending = asyncio.ensure_future(service.explain(make_poem(), "fa"))
            await asyncio.sleep(0.01)
            service.cancel_all()
            return await pending

        with patch.object(service, "_fetch_remote", side_effect=slow_remote):
            entry = asyncio.run(run())

        assert entry.error == CANCELLED_ERROR
        assert (1, "fa") not in service.cache
        assert len(service.active) == 0

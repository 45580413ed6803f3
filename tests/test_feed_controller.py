"""
Tests for the poem feed controller.

The upstream client is replaced by an in-memory fake and translation uses a
fake OpenAI client, so the full load / switch / refresh flows run offline.

Run with: pytest tests/test_feed_controller.py -v
"""

import asyncio
import itertools
import json
from typing import List, Optional
from unittest.mock import Mock, patch

import requests

from circuit_breaker import CircuitBreaker
from conftest import FakeOpenAI, make_poem
from explanation_service import ExplanationService
from feed_controller import FeedState, PoemFeedController
from translation_service import TranslationService


class FakeSource:
    def __init__(self, factory: "FakeSourceFactory", breaker: CircuitBreaker, used_ids, on_circuit_open):
        self.factory = factory
        self.breaker = breaker
        self.used_ids = used_ids
        self.on_circuit_open = on_circuit_open
        self.calls: List[int] = []

    async def fetch_many(self, count: int):
        self.calls.append(count)
        if self.factory.delay:
            await asyncio.sleep(self.factory.delay)
        if self.factory.fail:
            for _ in range(self.breaker.threshold):
                if self.breaker.record_failure():
                    self.on_circuit_open()
            return []

        poems = []
        for _ in range(count):
            if self.factory.limit is not None and self.factory.served >= self.factory.limit:
                break
            poem_id = next(self.factory.ids)
            self.factory.served += 1
            self.used_ids.add(poem_id)
            poems.append(make_poem(poem_id=poem_id, title=f"شعر {poem_id}"))
        return poems


class FakeSourceFactory:
    def __init__(self, limit: Optional[int] = None, fail: bool = False, delay: float = 0.0):
        self.limit = limit
        self.fail = fail
        self.delay = delay
        self.ids = itertools.count(1)
        self.served = 0
        self.clients: List[FakeSource] = []

    def __call__(self, breaker, used_ids, on_circuit_open):
        client = FakeSource(self, breaker, used_ids, on_circuit_open)
        self.clients.append(client)
        return client


def make_controller(store, language="fa", factory=None, client=None, **kwargs) -> PoemFeedController:
    return PoemFeedController(
        language=language,
        store=store,
        translator=TranslationService(store, client=client or FakeOpenAI()),
        explanations=ExplanationService(url=""),
        source_factory=factory or FakeSourceFactory(),
        **kwargs,
    )


class TestInitialLoad:
    """Tests for the first screen in each language."""

    def test_source_language(self, store):
        controller = make_controller(store)
        asyncio.run(controller.initial_load())

        assert controller.state == FeedState.READY
        assert [p.id for p in controller.poems] == list(range(1, 9))
        assert len(controller.session.originals) == 8
        assert not controller.using_mock_data

    def test_empty_retries_once_then_empty_state(self, store):
        """Nothing loaded with a closed breaker ends in the empty state."""
        factory = FakeSourceFactory(limit=0)
        controller = make_controller(store, factory=factory)
        asyncio.run(controller.initial_load())

        assert factory.clients[0].calls == [8, 8]
        assert controller.state == FeedState.EMPTY
        assert controller.poems == []
        assert not controller.has_more

    def test_timeout_counts_as_empty(self, store):
        factory = FakeSourceFactory(delay=1.0)
        controller = make_controller(store, factory=factory, initial_timeout=0.02)
        asyncio.run(controller.initial_load())
        assert controller.state == FeedState.EMPTY

    def test_open_breaker_uses_mock_poems(self, store):
        """Sustained upstream failure switches to the offline poem set."""
        controller = make_controller(store, factory=FakeSourceFactory(fail=True))
        asyncio.run(controller.initial_load())

        assert controller.state == FeedState.READY
        assert controller.using_mock_data
        assert not controller.has_more
        assert sorted(p.id for p in controller.poems) == [1, 2, 3, 4, 5, 6]

    def test_translated_language_mock_fallback(self, store):
        controller = make_controller(store, language="en", factory=FakeSourceFactory(fail=True))
        asyncio.run(controller.initial_load())

        assert controller.using_mock_data
        assert sorted(p.id for p in controller.poems) == [101, 102, 103, 104, 105, 106]

    def test_progressive_reveal_in_chunks(self, store):
        """Six originals translated two at a time are revealed as 2, 4, 6."""
        controller = make_controller(store, language="en", factory=FakeSourceFactory(limit=6))
        counts = []
        controller.subscribe(lambda c: counts.append(len(c.poems)))

        asyncio.run(controller.initial_load())

        assert [count for count in counts if count] == [2, 4, 6]
        assert [p.id for p in controller.poems] == [1001, 1002, 1003, 1004, 1005, 1006]
        assert all(p.language == "en" for p in controller.poems)
        assert controller.state == FeedState.READY

    def test_cached_translations_shown_instantly(self, store):
        """With a full page of cached translations the feed is ready before any fetch."""
        seed = TranslationService(store, client=FakeOpenAI())

        async def seed_cache():
            for poem_id in range(501, 509):
                await seed.translate(make_poem(poem_id=poem_id))

        asyncio.run(seed_cache())

        client = FakeOpenAI()
        factory = FakeSourceFactory()
        controller = make_controller(store, language="en", factory=factory, client=client)

        async def run():
            await controller.initial_load()
            ready_count = len(controller.poems)
            await controller.wait_for_background()
            return ready_count

        ready_count = asyncio.run(run())

        assert ready_count == 8
        assert factory.clients[0].calls == [5]
        assert len(controller.poems) == 13
        assert len(client.calls) == 5


class TestLoadMore:
    """Tests for appending poems near the end of the feed."""

    def test_source_language_batch(self, store):
        controller = make_controller(store)

        async def run():
            await controller.initial_load()
            assert controller.maybe_load_more(2) is None
            task = controller.maybe_load_more(3)
            assert task is not None
            return await task

        added = asyncio.run(run())

        assert added == 10
        assert len(controller.poems) == 18
        assert controller.state == FeedState.READY

    def test_translated_batch(self, store):
        client = FakeOpenAI()
        controller = make_controller(store, language="en", client=client)

        async def run():
            await controller.initial_load()
            return await controller.load_more()

        assert asyncio.run(run()) == 5
        assert len(controller.poems) == 13
        assert len(client.calls) == 13

    def test_empty_batch_ends_feed(self, store):
        controller = make_controller(store, factory=FakeSourceFactory(limit=8))

        async def run():
            await controller.initial_load()
            added = await controller.load_more()
            return added, controller.maybe_load_more(7)

        added, task = asyncio.run(run())

        assert added == 0
        assert not controller.has_more
        assert task is None

    def test_no_load_more_during_initial_load(self, store):
        """Nothing is appended or fetched in parallel while the first page is loading."""
        factory = FakeSourceFactory(delay=0.05)
        controller = make_controller(store, factory=factory)

        async def run():
            pending = asyncio.ensure_future(controller.initial_load())
            await asyncio.sleep(0.01)
            early_task = controller.maybe_load_more(0)
            early_added = await controller.load_more()
            await pending
            return early_task, early_added

        early_task, early_added = asyncio.run(run())

        assert early_task is None
        assert early_added == 0
        assert factory.clients[0].calls == [8]
        assert [p.id for p in controller.poems] == list(range(1, 9))
        assert {p.id for p in controller.poems} == controller.session.used_ids

    def test_partial_cache_waits_for_fill(self, store):
        """Cached translations make the feed ready early, but load-more waits for the fill."""
        seed = TranslationService(store, client=FakeOpenAI())

        async def seed_cache():
            for poem_id in (501, 502, 503):
                await seed.translate(make_poem(poem_id=poem_id))

        asyncio.run(seed_cache())

        factory = FakeSourceFactory(delay=0.05)
        controller = make_controller(store, language="en", factory=factory)

        async def run():
            pending = asyncio.ensure_future(controller.initial_load())
            await asyncio.sleep(0.01)
            state = controller.state
            early_task = controller.maybe_load_more(0)
            await pending
            filled = len(controller.poems)
            added = await controller.maybe_load_more(filled - 1)
            return state, early_task, filled, added

        state, early_task, filled, added = asyncio.run(run())

        assert state == FeedState.READY
        assert early_task is None
        assert filled == 8
        assert added == 5
        assert factory.clients[0].calls == [5, 5]

    def test_timeout_counts_as_empty_batch(self, store):
        factory = FakeSourceFactory()
        controller = make_controller(store, factory=factory, source_load_more_timeout=0.02)

        async def run():
            await controller.initial_load()
            factory.delay = 1.0
            return await controller.load_more()

        added = asyncio.run(run())

        assert added == 0
        assert not controller.has_more
        assert controller.state == FeedState.READY
        assert len(controller.poems) == 8

    def test_translated_timeout_skips_translation(self, store):
        client = FakeOpenAI()
        factory = FakeSourceFactory()
        controller = make_controller(store, language="en", factory=factory, client=client,
                                     translated_load_more_timeout=0.02)

        async def run():
            await controller.initial_load()
            factory.delay = 1.0
            return await controller.load_more()

        assert asyncio.run(run()) == 0
        assert not controller.has_more
        assert len(controller.poems) == 8
        assert len(client.calls) == 8


class TestDegradedMode:
    """Tests for switching to offline poems when the breaker opens mid-session."""

    def test_breaker_opening_during_load_more(self, store):
        factory = FakeSourceFactory()
        controller = make_controller(store, factory=factory)
        flags = []

        async def run():
            await controller.initial_load()
            controller.subscribe(lambda c: flags.append(c.using_mock_data))
            factory.fail = True
            return await controller.load_more()

        added = asyncio.run(run())

        assert added == 0
        assert controller.breaker.is_open
        assert controller.using_mock_data
        assert not controller.has_more
        assert True in flags
        assert [p.id for p in controller.poems] == list(range(1, 9))
        assert controller.maybe_load_more(7) is None

    def test_default_source_client_reports_open_breaker(self, store):
        """The production source client is wired to the controller's degraded-mode switch."""
        controller = PoemFeedController(
            language="fa",
            store=store,
            translator=TranslationService(store, client=FakeOpenAI()),
            explanations=ExplanationService(url=""),
        )
        controller._source.delay = 0
        served = itertools.count(1)

        def fake_get(*args, **kwargs):
            poem_id = next(served)
            if poem_id > 8:
                raise requests.exceptions.ConnectionError("down")
            return Mock(ok=True, status_code=200, text=json.dumps({"id": poem_id, "plainText": "بیت"}))

        async def run():
            await controller.initial_load()
            return await controller.load_more()

        with patch("source_client.requests.get", side_effect=fake_get):
            added = asyncio.run(run())

        assert added == 0
        assert [p.id for p in controller.poems] == list(range(1, 9))
        assert controller.breaker.is_open
        assert controller.using_mock_data
        assert not controller.has_more

    def test_switch_keeps_real_originals(self, store):
        """After a mid-session trip, switching language reuses fetched poems instead of mocks."""
        factory = FakeSourceFactory()
        controller = make_controller(store, factory=factory)

        async def run():
            await controller.initial_load()
            factory.fail = True
            await controller.load_more()
            await controller.switch_language("en")

        asyncio.run(run())

        assert [p.id for p in controller.poems] == [1001 + i for i in range(8)]
        assert controller.using_mock_data
        assert not controller.has_more


class TestLanguageSwitch:
    """Tests for switching between Persian and English."""

    def test_switch_reuses_originals(self, store):
        """Switching translates the session originals without fetching again."""
        factory = FakeSourceFactory()
        controller = make_controller(store, factory=factory)
        counts = []

        async def run():
            await controller.initial_load()
            controller.subscribe(lambda c: counts.append(len(c.poems)))
            await controller.switch_language("en")
            english = [p.id for p in controller.poems]
            await controller.switch_language("fa")
            return english

        english = asyncio.run(run())

        assert english == [1001 + i for i in range(8)]
        assert [p.id for p in controller.poems] == list(range(1, 9))
        assert factory.clients[0].calls == [8]
        assert 3 in counts and 6 in counts
        assert store.get("app-language") == "fa"
        assert controller.state == FeedState.READY

    def test_switch_persists_preference(self, store):
        controller = make_controller(store, user_id="u1")

        async def run():
            await controller.initial_load()
            await controller.switch_language("en")

        asyncio.run(run())
        assert store.get("app-language") == "en"
        assert store.get("preference:u1:language") == "en"

    def test_switch_clears_explanations(self, store):
        controller = make_controller(store)

        async def run():
            await controller.initial_load()
            await controller.explain(controller.poems[0])
            assert len(controller.explanations.cache) == 1
            await controller.switch_language("en")

        asyncio.run(run())
        assert len(controller.explanations.cache) == 0


class TestRefreshAndClose:
    """Tests for session replacement and teardown."""

    def test_refresh_starts_new_session(self, store):
        breaker = CircuitBreaker()
        controller = make_controller(store, breaker=breaker)

        async def run():
            await controller.initial_load()
            old_session = controller.session
            entry = await controller.explain(controller.poems[0])
            assert entry.is_success
            breaker.record_failure()
            await controller.refresh()
            return old_session

        old_session = asyncio.run(run())

        assert controller.session is not old_session
        assert [p.id for p in controller.poems] == list(range(9, 17))
        assert controller.session.used_ids == set(range(9, 17))
        assert breaker.consecutive_failures == 0
        assert len(controller.explanations.cache) == 0

    def test_superseded_load_is_dropped(self, store):
        """An initial load overtaken by a refresh never lands in the feed."""
        controller = make_controller(store, factory=FakeSourceFactory(delay=0.05))

        async def run():
            first = asyncio.ensure_future(controller.initial_load())
            await asyncio.sleep(0.01)
            await controller.refresh()
            await first

        asyncio.run(run())

        assert [p.id for p in controller.poems] == list(range(9, 17))
        assert controller.state == FeedState.READY

    def test_close_cancels_background(self, store):
        factory = FakeSourceFactory()
        controller = make_controller(store, factory=factory)

        async def run():
            await controller.initial_load()
            factory.delay = 1.0
            task = controller.maybe_load_more(7)
            await asyncio.sleep(0.01)
            await controller.close()
            return task

        task = asyncio.run(run())

        assert task.cancelled()
        assert len(controller.poems) == 8

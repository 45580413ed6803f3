"""
Shared fixtures for the poem feed tests.

Environment overrides are applied before any project module is imported so
that config.py never picks up a developer .env (no log files, no API key).
"""

import os

os.environ["LOG_TO_FILE"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["SERVER_AUTH_TOKEN"] = ""

import asyncio
from types import SimpleNamespace
from typing import Callable, List, Optional

import pytest

from kv_store import JsonFileStore
from models import Poem, Poet, text_to_html


def make_poem(poem_id: int = 1, text: str = "بیت اول\nبیت دوم", title: str = "غزل",
              poet_name: str = "حافظ", language: str = "fa") -> Poem:
    return Poem(
        id=poem_id,
        title=title,
        text=text,
        html_text=text_to_html(text),
        poet=Poet(id=1, name=poet_name, full_name=poet_name),
        language=language,
    )


def default_reply(messages) -> str:
    prompt = messages[-1]["content"]
    title = prompt.split("Title: ", 1)[1].split("\n", 1)[0]
    return f"POEM:\nTranslated {title}\nsecond line\n\nTITLE:\nEnglish {title}\n\nPOET:\nHafez"


class FakeCompletions:
    """Stands in for AsyncOpenAI().chat.completions."""

    def __init__(self, reply: Callable, delay: float = 0.0):
        self.reply = reply
        self.delay = delay
        self.calls: List[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        content = self.reply(kwargs["messages"])
        if isinstance(content, BaseException):
            raise content
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(prompt_tokens=120, completion_tokens=80),
        )


class FakeOpenAI:
    def __init__(self, reply: Optional[Callable] = None, delay: float = 0.0):
        self.chat = SimpleNamespace(completions=FakeCompletions(reply or default_reply, delay))

    @property
    def calls(self) -> List[dict]:
        return self.chat.completions.calls


@pytest.fixture
def store(tmp_path):
    """A JSON file store rooted in a temporary directory."""
    return JsonFileStore(tmp_path / "cache")


@pytest.fixture
def poem_factory():
    return make_poem


@pytest.fixture
def fake_openai():
    return FakeOpenAI

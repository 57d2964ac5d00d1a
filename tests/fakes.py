"""Stand-ins for the external collaborators (chat model, Tavily, X API, Redis)."""
import asyncio
import json
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage


def tool_call_message(*calls) -> AIMessage:
    """AIMessage requesting tools; each call is ``(id, name, args)``."""
    return AIMessage(
        content="",
        tool_calls=[{"id": call_id, "name": name, "args": args, "type": "tool_call"} for call_id, name, args in calls],
    )


def final_message(payload: Dict[str, Any]) -> AIMessage:
    return AIMessage(content=json.dumps(payload))


class ScriptedChatModel:
    """
    Tool-calling chat model replaying canned replies in order.
    ``calls`` records ``(bound_tool_names or None, messages)`` for every invocation.
    """

    def __init__(self, replies: List[Any], delay: float = 0):
        self.replies = list(replies)
        self.delay = delay
        self.calls: List[Any] = []

    def bind_tools(self, tools):
        return _BoundModel(self, [t.name for t in tools])

    async def ainvoke(self, messages):
        return await self._reply(None, messages)

    async def _reply(self, tool_names, messages):
        self.calls.append((tool_names, list(messages)))
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class _BoundModel:
    def __init__(self, model: ScriptedChatModel, tool_names: List[str]):
        self.model = model
        self.tool_names = tool_names

    async def ainvoke(self, messages):
        return await self.model._reply(self.tool_names, messages)


class StubTools:
    """Exposes a fixed set of LangChain tools by name."""

    def __init__(self, *tools):
        self.tools = {t.name: t for t in tools}

    def select(self, names, model=None):
        return [self.tools[name] for name in names if name in self.tools]


class FakeTavilyClient:
    def __init__(self, results: Optional[List[Dict[str, Any]]] = None, answer: str = "", error: Exception = None):
        self.results = results or []
        self.answer = answer
        self.error = error
        self.queries: List[str] = []

    async def raw_results_async(self, query, **kwargs):
        self.queries.append(query)
        if self.error:
            raise self.error
        return {"query": query, "answer": self.answer, "results": self.results}


class FakeTweepyClient:
    def __init__(self, text: Optional[str] = "Hello from the timeline", not_found: bool = False):
        self.text = text
        self.not_found = not_found
        self.requested: List[str] = []

    async def get_tweet(self, tweet_id, **kwargs):
        self.requested.append(tweet_id)
        if self.not_found:
            return SimpleNamespace(data=None, includes={})
        tweet = SimpleNamespace(
            id=int(tweet_id),
            text=self.text,
            author_id=42,
            created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            public_metrics={"like_count": 1200, "retweet_count": 30, "reply_count": 7},
        )
        author = SimpleNamespace(id=42, username="nasa", name="NASA")
        return SimpleNamespace(data=tweet, includes={"users": [author]})


class FakeAsyncRedis:
    """The handful of redis.asyncio commands the history store uses."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.sorted_sets: Dict[str, Dict[str, float]] = {}

    async def set(self, name, value, ex=None):
        self.values[name] = value
        return True

    async def get(self, name):
        return self.values.get(name)

    async def mget(self, names):
        return [self.values.get(name) for name in names]

    async def delete(self, *names):
        return sum(1 for name in names if self.values.pop(name, None) is not None)

    async def zadd(self, name, mapping):
        self.sorted_sets.setdefault(name, {}).update(mapping)
        return len(mapping)

    async def zrem(self, name, *members):
        members_set = self.sorted_sets.get(name, {})
        return sum(1 for m in members if members_set.pop(m, None) is not None)

    async def zrevrange(self, name, start, end):
        ordered = sorted(self.sorted_sets.get(name, {}).items(), key=lambda kv: kv[1], reverse=True)
        return [member for member, _ in ordered[start:end + 1]]

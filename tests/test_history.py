import asyncio
from unittest.mock import AsyncMock

import pytest

from checkmate.core.config import Config
from checkmate.core.errors import PersistenceError
from checkmate.core.history import InvestigationHistory

from fakes import FakeAsyncRedis


def test_save_get_list_delete():
    history = InvestigationHistory(client=FakeAsyncRedis(), settings=Config(HISTORY_LIMIT=2))

    async def scenario():
        first = await history.save("Is water wet?", {"verdict": "true"}, timestamp=100.0)
        second = await history.save("Eiffel Tower in Berlin?", {"verdict": "false"}, graph_data={"nodes": []}, timestamp=200.0)
        third = await history.save("Moon landing 1969?", {"verdict": "true"}, timestamp=300.0)
        fetched = await history.get(second.id)
        recent = await history.list_recent()
        deleted = await history.delete(third.id)
        missing = await history.get(third.id)
        return first, second, third, fetched, recent, deleted, missing

    first, second, third, fetched, recent, deleted, missing = asyncio.run(scenario())

    assert fetched == second
    assert fetched.graph_data == {"nodes": []}
    assert [r.id for r in recent] == [third.id, second.id]
    assert deleted is True
    assert missing is None


def test_deleting_unknown_record_reports_false():
    history = InvestigationHistory(client=FakeAsyncRedis())
    assert asyncio.run(history.delete("nope")) is False


def test_store_errors_propagate_as_persistence_errors():
    client = AsyncMock()
    client.set.side_effect = ConnectionError("redis down")
    with pytest.raises(PersistenceError, match="redis down"):
        asyncio.run(InvestigationHistory(client=client).save("q", {}))

import logging
import time
import uuid
from typing import Any, List, Optional

from checkmate.core.cache import get_async_client
from checkmate.core.config import config, Config
from checkmate.core.errors import PersistenceError
from checkmate.core.models import HistoryRecord

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

RECORD_PREFIX = "checkmate:investigation:"
RECENT_INDEX = "checkmate:investigations:recent"


class InvestigationHistory:
    """
    Redis-backed store of finished investigations.
    Records are JSON strings keyed by id; a sorted set indexes them by timestamp.
    """

    def __init__(self, client: Any = None, settings: Config = config):
        self._client = client
        self.settings = settings

    @property
    def client(self):
        if self._client is None:
            self._client = get_async_client()
        return self._client

    async def save(
        self,
        user_query: str,
        results: Any,
        user_source_content: Optional[str] = None,
        graph_data: Any = None,
        timestamp: Optional[float] = None,
    ) -> HistoryRecord:
        record = HistoryRecord(
            id=uuid.uuid4().hex,
            user_query=user_query,
            user_source_content=user_source_content,
            results=results,
            graph_data=graph_data,
            timestamp=timestamp if timestamp is not None else time.time(),
        )
        try:
            await self.client.set(RECORD_PREFIX + record.id, record.model_dump_json(by_alias=True))
            await self.client.zadd(RECENT_INDEX, {record.id: record.timestamp})
        except Exception as e:
            logger.error(f"Failed to store investigation {record.id}: {e}")
            raise PersistenceError(f"Failed to store investigation: {e}") from e
        logger.info(f"Stored investigation {record.id}")
        return record

    async def get(self, record_id: str) -> Optional[HistoryRecord]:
        try:
            raw = await self.client.get(RECORD_PREFIX + record_id)
        except Exception as e:
            raise PersistenceError(f"Failed to load investigation: {e}") from e
        return HistoryRecord.model_validate_json(raw) if raw else None

    async def delete(self, record_id: str) -> bool:
        try:
            removed = await self.client.delete(RECORD_PREFIX + record_id)
            await self.client.zrem(RECENT_INDEX, record_id)
        except Exception as e:
            raise PersistenceError(f"Failed to delete investigation: {e}") from e
        return bool(removed)

    async def list_recent(self, limit: Optional[int] = None) -> List[HistoryRecord]:
        limit = limit or self.settings.HISTORY_LIMIT
        try:
            ids = await self.client.zrevrange(RECENT_INDEX, 0, limit - 1)
            if not ids:
                return []
            raws = await self.client.mget([RECORD_PREFIX + record_id for record_id in ids])
        except Exception as e:
            raise PersistenceError(f"Failed to list investigations: {e}") from e
        return [HistoryRecord.model_validate_json(raw) for raw in raws if raw]

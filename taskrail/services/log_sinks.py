"""Durable execution log sinks.

Destinations for the secondary execution log tier: a SQLAlchemy table and a
Supabase (PostgREST) endpoint.
"""

import asyncio
import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskrail.core.config import Settings
from taskrail.db.retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_on_db_error
from taskrail.models.task_log import TaskLog
from taskrail.services.orchestrator.execution_logger import LogRecordData, LogSink, SecondaryLogTier

logger = logging.getLogger(__name__)


class DatabaseLogSink(LogSink):
    """Writes execution log records to the ``task_logs`` table."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.session_maker = session_maker
        self.retry_policy = retry_policy or DEFAULT_RETRY_POLICY

    async def _insert(self, record: LogRecordData) -> None:
        async with self.session_maker() as session:
            session.add(TaskLog.from_record(record))
            await session.commit()

    async def write(self, record: LogRecordData) -> None:
        await retry_on_db_error(self._insert, record, policy=self.retry_policy)


class SupabaseLogSink(LogSink):
    """Posts execution log records to a Supabase table over its REST API."""

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "task_logs",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = client
        self._owns_client = client is None
        self._lock = asyncio.Lock()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared async HTTP client."""
        if self._http_client is None:
            async with self._lock:
                if self._http_client is None:
                    self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http_client

    async def write(self, record: LogRecordData) -> None:
        client = await self._get_http_client()
        response = await client.post(
            self.endpoint,
            json=record.to_dict(),
            headers={
                "apikey": self.api_key,
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Prefer": "return=minimal",
            },
        )
        if response.is_error:
            raise RuntimeError(
                f"Failed to log to Supabase: {response.status_code} {response.reason_phrase}"
            )

    async def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None


def build_secondary_log(
    settings: Settings,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Optional[SecondaryLogTier]:
    """Build the secondary log tier configured in ``settings``.

    Returns None when the backend is ``none`` or is missing its
    configuration; definitions asking for secondary logging then only log
    to the primary tier.
    """
    backend = settings.secondary_log_backend

    if backend == "database":
        if session_maker is None:
            logger.warning("Secondary log backend is 'database' but DATABASE_URL is not set")
            return None
        sink = DatabaseLogSink(
            session_maker,
            RetryPolicy(
                max_attempts=settings.log_sink_max_attempts,
                initial_delay=settings.log_sink_retry_delay_seconds,
            ),
        )
    elif backend == "supabase":
        if not settings.supabase_url or not settings.supabase_api_key:
            logger.warning("Secondary log backend is 'supabase' but SUPABASE_URL/SUPABASE_API_KEY are not set")
            return None
        sink = SupabaseLogSink(
            settings.supabase_url,
            settings.supabase_api_key,
            table=settings.supabase_log_table,
            timeout=settings.log_sink_timeout_seconds,
        )
    else:
        return None

    logger.info(f"Secondary execution logging enabled ({backend})")
    return SecondaryLogTier(sink, timeout=settings.log_sink_timeout_seconds)

"""FeedDataStore backed by the hosted Postgres REST API."""

import asyncio
import logging
from contextlib import nullcontext
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp.client_exceptions import ClientResponseError

from campus_feed.config import Config
from campus_feed.errors import TransientNetworkFailure
from campus_feed.models.feed import Comment, FetchScope, VotableKind, VoteDirection
from campus_feed.models.mapping import VOTE_TABLES, rows_to_comments, rows_to_posts, vote_to_row
from campus_feed.storage.data_store import Votable
from campus_feed.storage.error_handler import with_exponential_backoff

logger = logging.getLogger(__name__)

SUBJECT_TABLES = {
    VotableKind.POST: "posts",
    VotableKind.COMMENT: "comments",
}


class SupabaseRestStore:
    """
    Talks to the backend's PostgREST endpoints under ``/rest/v1``.

    Reads embed each subject's votes (``select=*,votes(*)``). Vote writes are
    upserts keyed on (subject, user); removing a vote is a DELETE. Reads are
    retried with exponential backoff, vote writes are sent once.
    """

    def __init__(
        self,
        config: Config,
        session: Optional[aiohttp.ClientSession] = None,
        prometheus_exporter=None,
    ):
        """
        Initialize the store.

        Args:
            config: Application configuration with backend URL and keys
            session: Optional shared aiohttp session; one is created lazily otherwise
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.config = config
        self.prometheus_exporter = prometheus_exporter
        self._session = session
        self._owns_session = session is None

        retry = config.retry
        self._get_rows = with_exponential_backoff(
            max_retries=retry.max_retries,
            initial_backoff=retry.initial_backoff,
            max_backoff=retry.max_backoff,
            backoff_factor=retry.backoff_factor,
            prometheus_exporter=prometheus_exporter,
        )(self._get_rows_once)

    async def __aenter__(self) -> "SupabaseRestStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this store created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_sec)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        token = self.config.access_token or self.config.supabase_anon_key
        headers = {
            "apikey": self.config.supabase_anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _url(self, table: str) -> str:
        return f"{self.config.supabase_url}/rest/v1/{table}"

    def _timer(self):
        if self.prometheus_exporter:
            return self.prometheus_exporter.time_request()
        return nullcontext()

    async def _get_rows_once(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        session = self._get_session()
        with self._timer():
            async with session.request(
                "GET", self._url(table), params=params, headers=self._headers()
            ) as response:
                response.raise_for_status()
                return await response.json()

    async def _send(
        self,
        method: str,
        table: str,
        params: Dict[str, str],
        json: Optional[List[Dict[str, Any]]] = None,
        prefer: Optional[str] = None,
    ) -> None:
        session = self._get_session()
        with self._timer():
            async with session.request(
                method, self._url(table), params=params, json=json, headers=self._headers(prefer)
            ) as response:
                response.raise_for_status()

    async def fetch_votables(
        self, kind: VotableKind, scope: Optional[FetchScope] = None
    ) -> List[Votable]:
        """
        Fetch posts or comments with their votes embedded.

        Raises:
            TransientNetworkFailure: If the backend could not be read
        """
        scope = scope or FetchScope()
        table = SUBJECT_TABLES[kind]
        vote_table, _ = VOTE_TABLES[kind]

        params = {"select": f"*,{vote_table}(*)", "order": "created_at.desc"}
        if scope.author_id is not None:
            params["author_id"] = f"eq.{scope.author_id}"
        if scope.post_id is not None and kind == VotableKind.COMMENT:
            params["post_id"] = f"eq.{scope.post_id}"
        if scope.limit is not None:
            params["limit"] = str(scope.limit)

        try:
            rows = await self._get_rows(table, params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to fetch {table}: {e!r}")
            raise TransientNetworkFailure(f"fetch {table}", cause=e) from e

        if self.prometheus_exporter:
            self.prometheus_exporter.record_fetch_operation(kind.value)
        logger.debug(f"Fetched {len(rows)} rows from {table}")

        if kind == VotableKind.POST:
            return rows_to_posts(rows)
        return rows_to_comments(rows)

    async def fetch_comments(self, post_id: str) -> List[Comment]:
        return await self.fetch_votables(VotableKind.COMMENT, FetchScope(post_id=post_id))

    async def upsert_vote(
        self,
        kind: VotableKind,
        subject_id: str,
        user_id: str,
        direction: Optional[VoteDirection],
    ) -> bool:
        """
        Write the user's vote, or delete it when ``direction`` is None.

        Returns:
            False if the backend refused the write (4xx)

        Raises:
            TransientNetworkFailure: On connection errors, timeouts, 429 or 5xx
        """
        vote_table, subject_key = VOTE_TABLES[kind]
        try:
            if direction is None:
                await self._send(
                    "DELETE",
                    vote_table,
                    params={subject_key: f"eq.{subject_id}", "user_id": f"eq.{user_id}"},
                )
            else:
                await self._send(
                    "POST",
                    vote_table,
                    params={"on_conflict": f"{subject_key},user_id"},
                    json=[vote_to_row(kind, subject_id, user_id, direction)],
                    prefer="resolution=merge-duplicates,return=minimal",
                )
        except ClientResponseError as e:
            if 400 <= e.status < 500 and e.status != 429:
                logger.warning(f"Vote on {kind.value} {subject_id} refused ({e.status}): {e.message}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_api_error("4xx")
                return False
            raise TransientNetworkFailure("upsert_vote", cause=e) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if self.prometheus_exporter:
                self.prometheus_exporter.record_api_error("connection")
            raise TransientNetworkFailure("upsert_vote", cause=e) from e
        return True

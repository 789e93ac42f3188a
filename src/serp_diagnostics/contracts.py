"""
Core interfaces for the search diagnostics system.

This module defines the abstract base classes that separate the diagnostic
engine from its collaborators: the search API, the raw content source, the
history store, the target configuration and the recurring trigger. These
interfaces establish a clear contract for implementations and keep the
analysis and orchestration code testable with plain mocks.
"""

import abc
from typing import Any, AsyncIterator, List, Mapping, Optional

from .domain import AlertRecord, ApiCallResult, RawContent, RunRecord, TargetConfig


class SearchApiClient(abc.ABC):
    """
    Abstract interface for the third-party search API.

    Implementations must not raise for ordinary HTTP failures: every outcome,
    including timeouts, is encoded in the returned ApiCallResult.
    """

    @abc.abstractmethod
    async def call(self, params: Mapping[str, Any], api_key: str, timeout: float) -> ApiCallResult:
        """
        Performs one search request.

        Args:
            params: Request parameters, including the engine.
            api_key: The API credential.
            timeout: Timeout in seconds for the whole request.

        Returns:
            ApiCallResult: The outcome of the call. A timeout maps to status 408.
        """
        pass


class RawContentFetcher(abc.ABC):
    """
    Abstract interface for fetching the raw content behind a URL.

    Used identically by the deep analysis and the upstream analysis stages.
    """

    @abc.abstractmethod
    async def fetch(self, url: str, timeout: float, max_bytes: Optional[int] = None) -> RawContent:
        """
        Fetches the body of the given URL.

        Args:
            url: The URL to fetch.
            timeout: Timeout in seconds for the whole request.
            max_bytes: Optional cap on the body size; excess content is truncated.

        Returns:
            RawContent: The status and the decoded body. Network errors are
                reported in the result rather than raised.
        """
        pass


class HistoryStore(abc.ABC):
    """
    Abstract interface for the append-mostly store of runs and alerts.

    The diagnostic engine only ever appends runs and alerts and queries recent
    runs; it never updates or deletes a run record.
    """

    @abc.abstractmethod
    async def insert_run(self, record: RunRecord) -> None:
        pass

    @abc.abstractmethod
    async def list_recent_runs(self, engine_id: str, limit: int) -> List[RunRecord]:
        """
        Returns the most recent runs of an engine, newest first.

        Args:
            engine_id: The engine whose history is requested.
            limit: Maximum number of runs to return.

        Returns:
            List[RunRecord]: The runs ordered by creation time, newest first.
        """
        pass

    @abc.abstractmethod
    async def insert_alert(self, record: AlertRecord) -> None:
        pass

    async def touch_last_run(self, engine_id: str) -> None:
        """
        Records that an engine has just been scanned.

        Stores without a per-engine configuration table may keep this no-op.
        """
        pass


class TargetProvider(abc.ABC):
    """Abstract interface for the source of monitored engine configurations."""

    @abc.abstractmethod
    async def list_targets(self) -> List[TargetConfig]:
        pass


class WorkScheduler(abc.ABC):
    """
    Abstract interface for a recurring work trigger.

    Its responsibility is to provide an asynchronous stream of target batches,
    one batch per diagnostic pass.
    """

    @abc.abstractmethod
    async def start(self) -> None:
        """
        Prepares the scheduler to start yielding work.

        This method should be called before using the scheduler in an async for loop.
        """
        pass

    @abc.abstractmethod
    async def stop(self) -> None:
        """
        Stops the scheduler. Calling it more than once must be harmless.
        """
        pass

    def __aiter__(self) -> AsyncIterator[List[TargetConfig]]:
        return self

    @abc.abstractmethod
    async def __anext__(self) -> List[TargetConfig]:
        """
        Waits for and returns the next batch of work.

        Returns:
            List[TargetConfig]: The targets to scan in this pass.

        Raises:
            StopAsyncIteration: When the scheduler has been stopped.
        """
        raise StopAsyncIteration

"""
Scan orchestration for the search diagnostics system.

This module provides the ScanOrchestrator class, which runs the diagnostic
pipeline for each monitored engine: search API call, deep analysis, upstream
analysis, status resolution, anomaly detection and persistence. It offers a
recurring mode with bounded concurrency and an on-demand mode in which every
engine is scanned in its own task under a per-engine time limit.

A failure in one engine never affects another: exceptions are logged and the
affected engine is reported as UPSTREAM_BLOCK.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from serp_diagnostics.analysis.anomaly import detect_anomalies
from serp_diagnostics.analysis.deep_analysis import DeepAnalyzer
from serp_diagnostics.analysis.status import deep_analysis_status, resolve_status
from serp_diagnostics.analysis.upstream import UpstreamAnalyzer, extract_raw_html_url
from serp_diagnostics.config.constants import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_HISTORY_DEPTH,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_SCAN_TIMEOUT,
)
from serp_diagnostics.contracts import HistoryStore, SearchApiClient, TargetProvider
from serp_diagnostics.domain import (
    AlertRecord,
    Anomaly,
    ApiCallResult,
    DiagnosticSummary,
    RunRecord,
    ScanOutcome,
    ScanState,
    Status,
    TargetConfig,
)
from serp_diagnostics.serialization import dump_params, dump_summary

# Module logger
logger = logging.getLogger(__name__)

RUN_TYPE_SCHEDULED = "scheduled"
RUN_TYPE_MANUAL = "manual"
ALERT_TYPE = "dashboard"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _failed(engine_id: str, error: str) -> ScanOutcome:
    return ScanOutcome(
        engine_id=engine_id,
        status=Status.UPSTREAM_BLOCK,
        state=ScanState.FAILED,
        error=error,
    )


class ScanOrchestrator:
    """
    Runs diagnostic scans for monitored engines.

    Attributes:
        _api_client: The search API client.
        _deep_analyzer: Compares raw HTML with the structured response.
        _upstream_analyzer: Detects upstream blocking.
        _store: Persists runs and alerts and serves recent history.
        _target_provider: Source of the monitored engines.
        _api_key: The search API credential.
        _api_timeout: Timeout in seconds for the search API call.
        _scan_timeout: Time limit in seconds for one engine in on-demand scans.
        _max_concurrency: Maximum number of engines scanned at once in recurring passes.
        _history_depth: Number of prior runs considered by anomaly detection.
    """

    def __init__(
        self,
        api_client: SearchApiClient,
        deep_analyzer: DeepAnalyzer,
        upstream_analyzer: UpstreamAnalyzer,
        store: HistoryStore,
        target_provider: TargetProvider,
        api_key: Optional[str],
        api_timeout: float = DEFAULT_API_TIMEOUT,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        history_depth: int = DEFAULT_HISTORY_DEPTH,
    ) -> None:
        """
        Initializes a new ScanOrchestrator instance.

        Raises:
            ValueError: If the API key is missing or any limit is not positive.
        """
        if not isinstance(api_key, str) or not api_key.strip():
            raise ValueError("api_key must be provided and must be not blank.")

        if api_timeout <= 0 or scan_timeout <= 0:
            raise ValueError("api_timeout and scan_timeout must be positive.")

        if not isinstance(max_concurrency, int) or max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer.")

        if not isinstance(history_depth, int) or history_depth < 1:
            raise ValueError("history_depth must be a positive integer.")

        self._api_client: SearchApiClient = api_client
        self._deep_analyzer: DeepAnalyzer = deep_analyzer
        self._upstream_analyzer: UpstreamAnalyzer = upstream_analyzer
        self._store: HistoryStore = store
        self._target_provider: TargetProvider = target_provider
        self._api_key: str = api_key
        self._api_timeout: float = api_timeout
        self._scan_timeout: float = scan_timeout
        self._max_concurrency: int = max_concurrency
        self._history_depth: int = history_depth

    async def diagnose(self, target: TargetConfig) -> DiagnosticSummary:
        """
        Runs the analysis stages for one engine, without persisting anything.

        A failed API call yields an UPSTREAM_BLOCK summary with both stages
        skipped. The upstream stage is skipped when the response has no raw
        HTML URL.

        Args:
            target: The engine to diagnose.

        Returns:
            DiagnosticSummary: The resolved summary.
        """
        return await self._analyze(target, await self._call_api(target))

    async def _call_api(self, target: TargetConfig) -> ApiCallResult:
        params = {**target.params, "engine": target.engine_id}
        return await self._api_client.call(params, self._api_key, self._api_timeout)

    async def _analyze(self, target: TargetConfig, api_result: ApiCallResult) -> DiagnosticSummary:
        if not api_result.success or api_result.response is None:
            logger.warning(
                f"{target.engine_id}: API call failed "
                f"(status {api_result.status_code}): {api_result.error}"
            )
            return DiagnosticSummary(overall_status=Status.UPSTREAM_BLOCK, timestamp=_now())

        payload = api_result.response
        statuses: List[Status] = []

        deep_analysis = await self._deep_analyzer.analyze(target.engine_id, payload)
        deep_status = deep_analysis_status(deep_analysis)
        if deep_status is not None:
            statuses.append(deep_status)

        upstream = None
        raw_html_url = extract_raw_html_url(payload)
        if raw_html_url is not None:
            upstream = await self._upstream_analyzer.analyze(raw_html_url)
            statuses.append(upstream.status)

        return DiagnosticSummary(
            overall_status=resolve_status(statuses),
            timestamp=_now(),
            upstream=upstream,
            deep_analysis=deep_analysis,
        )

    async def scan_target(
        self, target: TargetConfig, run_type: str = RUN_TYPE_SCHEDULED
    ) -> ScanOutcome:
        """
        Diagnoses one engine, detects anomalies and persists the run and its alerts.

        The scan moves through PENDING, FETCHING, ANALYZING and PERSISTING to
        DONE. Any exception ends it in FAILED; nothing is raised to the caller
        except cancellation.

        Args:
            target: The engine to scan.
            run_type: The run type recorded with the run.

        Returns:
            ScanOutcome: The result of the scan.
        """
        engine_id = target.engine_id
        state = ScanState.PENDING

        try:
            state = ScanState.FETCHING
            logger.debug(f"{engine_id}: {state.value}")
            api_result = await self._call_api(target)

            state = ScanState.ANALYZING
            logger.debug(f"{engine_id}: {state.value}")
            summary = await self._analyze(target, api_result)
            history = await self._store.list_recent_runs(engine_id, self._history_depth)
            anomalies = detect_anomalies(engine_id, summary, history)

            state = ScanState.PERSISTING
            logger.debug(f"{engine_id}: {state.value}")
            await self._persist(target, run_type, summary, anomalies)

        except Exception as e:
            logger.exception(f"{engine_id}: scan failed while {state.value}")
            return _failed(engine_id, f"{state.value}: {e}")

        logger.info(f"{engine_id}: {summary.overall_status.value}")
        return ScanOutcome(
            engine_id=engine_id,
            status=summary.overall_status,
            state=ScanState.DONE,
            summary=summary,
            anomalies=tuple(anomalies),
        )

    async def run_pass(self, targets: Sequence[TargetConfig]) -> List[ScanOutcome]:
        """
        Scans every enabled engine of a recurring pass.

        At most max_concurrency engines are scanned at once. A failing engine
        is logged and reported as FAILED; the pass always completes.

        Args:
            targets: The engines of this pass. Disabled engines are skipped.

        Returns:
            List[ScanOutcome]: One outcome per enabled engine, in input order.
        """
        enabled = [t for t in targets if t.enabled]
        logger.info(f"Running diagnostics for {len(enabled)} engine(s)")
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(target: TargetConfig) -> ScanOutcome:
            async with semaphore:
                return await self.scan_target(target, RUN_TYPE_SCHEDULED)

        return list(await asyncio.gather(*(bounded(t) for t in enabled)))

    async def trigger_scan(self, engine_id: Optional[str] = None) -> List[ScanOutcome]:
        """
        Scans one engine, or every enabled engine, on demand.

        Each engine runs in its own task under the scan time limit. An engine
        that times out or fails is reported as UPSTREAM_BLOCK without affecting
        the others.

        Args:
            engine_id: The engine to scan, even if disabled. None scans every
                enabled engine.

        Returns:
            List[ScanOutcome]: One outcome per scanned engine. Empty if the
                engine is unknown.
        """
        targets = await self._target_provider.list_targets()
        if engine_id is not None:
            selected = [t for t in targets if t.engine_id == engine_id]
            if not selected:
                logger.warning(f"Unknown engine requested for scan: {engine_id}")
        else:
            selected = [t for t in targets if t.enabled]

        return list(await asyncio.gather(*(self._scan_with_limit(t) for t in selected)))

    async def _scan_with_limit(self, target: TargetConfig) -> ScanOutcome:
        try:
            return await asyncio.wait_for(
                self.scan_target(target, RUN_TYPE_MANUAL), timeout=self._scan_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"{target.engine_id}: scan timed out after {self._scan_timeout}s")
            return _failed(target.engine_id, f"Timeout after {self._scan_timeout}s")

    async def _persist(
        self,
        target: TargetConfig,
        run_type: str,
        summary: DiagnosticSummary,
        anomalies: List[Anomaly],
    ) -> Tuple[str, List[str]]:
        run_id = str(uuid4())
        await self._store.insert_run(
            RunRecord(
                id=run_id,
                engine_id=target.engine_id,
                run_type=run_type,
                params=dump_params(target.params),
                result=dump_summary(summary),
                status=summary.overall_status.value,
            )
        )
        await self._store.touch_last_run(target.engine_id)

        alert_ids: List[str] = []
        for anomaly in anomalies:
            alert_id = str(uuid4())
            await self._store.insert_alert(
                AlertRecord(
                    id=alert_id,
                    engine_id=target.engine_id,
                    alert_type=ALERT_TYPE,
                    message=anomaly.message,
                    severity=anomaly.severity,
                    diagnostic_run_id=run_id,
                )
            )
            alert_ids.append(alert_id)
        return run_id, alert_ids

"""
Unit tests for the ScanOrchestrator class.

The search API client, both analyzers, the history store and the target provider
are mocked, so the tests exercise the scan lifecycle, status resolution,
persistence and the concurrency rules of recurring and on-demand scans.
"""

import asyncio
from typing import Any, Dict, List, Mapping
from unittest.mock import AsyncMock

import pytest

from serp_diagnostics.analysis.deep_analysis import DeepAnalyzer
from serp_diagnostics.analysis.upstream import UpstreamAnalyzer
from serp_diagnostics.config.constants import DEFAULT_API_TIMEOUT, DEFAULT_HISTORY_DEPTH
from serp_diagnostics.contracts import HistoryStore, SearchApiClient, TargetProvider
from serp_diagnostics.domain import (
    AnomalyType,
    ApiCallResult,
    ContentType,
    DeepAnalysisReport,
    DiagnosticSummary,
    MissingSection,
    RunRecord,
    ScanState,
    Severity,
    Status,
    TargetConfig,
    UpstreamReport,
)
from serp_diagnostics.orchestrator import ALERT_TYPE, ScanOrchestrator
from serp_diagnostics.serialization import dump_summary, load_summary

RAW_URL = "https://serpapi.com/searches/abc/raw.html"

TARGETS = [
    TargetConfig("google", "Google Search", {"q": "coffee"}),
    TargetConfig("google_shopping", "Google Shopping", {"q": "laptop"}),
    TargetConfig("google_news", "Google News", {"q": "technology"}),
    TargetConfig("youtube_video_transcript", "YouTube Transcript", {"v": "dQw4w9WgXcQ"}),
    TargetConfig("ebay", "eBay", {"_nkw": "vintage camera"}),
    TargetConfig("naver", "Naver", {"query": "seoul"}),
]


def _ok(payload: Dict[str, Any]) -> ApiCallResult:
    return ApiCallResult(success=True, status_code=200, latency_ms=120, response=payload)


def _report(*missing: MissingSection) -> DeepAnalysisReport:
    return DeepAnalysisReport.build(
        engine="google",
        timestamp="2024-05-01T10:00:00+00:00",
        summary="s",
        html_fetched=True,
        missing_in_json=missing,
    )


def _blocked_upstream() -> UpstreamReport:
    return UpstreamReport(
        raw_html_url=RAW_URL,
        content_type=ContentType.HTML,
        is_blocked=True,
        block_patterns=(),
        html_size=900,
        status=Status.UPSTREAM_BLOCK,
        alert_message="Blocking patterns detected: CAPTCHA detected",
    )


def _stable_run() -> RunRecord:
    summary = DiagnosticSummary(Status.STABLE, "2024-05-01T09:00:00+00:00", deep_analysis=_report())
    return RunRecord("previous", "google", "scheduled", "{}", dump_summary(summary), "STABLE")


@pytest.fixture
def mock_api_client() -> AsyncMock:
    client = AsyncMock(spec=SearchApiClient)
    client.call.return_value = _ok({"search_metadata": {"status": "Success"}})
    return client


@pytest.fixture
def mock_deep_analyzer() -> AsyncMock:
    analyzer = AsyncMock(spec=DeepAnalyzer)
    analyzer.analyze.return_value = _report()
    return analyzer


@pytest.fixture
def mock_upstream_analyzer() -> AsyncMock:
    return AsyncMock(spec=UpstreamAnalyzer)


@pytest.fixture
def mock_store() -> AsyncMock:
    store = AsyncMock(spec=HistoryStore)
    store.list_recent_runs.return_value = []
    return store


@pytest.fixture
def mock_provider() -> AsyncMock:
    provider = AsyncMock(spec=TargetProvider)
    provider.list_targets.return_value = list(TARGETS)
    return provider


@pytest.fixture
def orchestrator_factory(
    mock_api_client: AsyncMock,
    mock_deep_analyzer: AsyncMock,
    mock_upstream_analyzer: AsyncMock,
    mock_store: AsyncMock,
    mock_provider: AsyncMock,
):
    """
    Provides a factory building orchestrators around the mocked collaborators.
    """

    def factory(**overrides: Any) -> ScanOrchestrator:
        kwargs: Dict[str, Any] = dict(
            api_client=mock_api_client,
            deep_analyzer=mock_deep_analyzer,
            upstream_analyzer=mock_upstream_analyzer,
            store=mock_store,
            target_provider=mock_provider,
            api_key="secret",
        )
        kwargs.update(overrides)
        return ScanOrchestrator(**kwargs)

    return factory


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"api_key": None}, "api_key must be provided"),
        ({"api_key": "   "}, "api_key must be provided"),
        ({"api_timeout": 0}, "must be positive"),
        ({"scan_timeout": -1.0}, "must be positive"),
        ({"max_concurrency": 0}, "max_concurrency must be a positive integer."),
        ({"history_depth": 0}, "history_depth must be a positive integer."),
    ],
)
def test_init_should_validate_arguments(orchestrator_factory, overrides, message) -> None:
    # Act & Assert
    with pytest.raises(ValueError, match=message):
        orchestrator_factory(**overrides)


@pytest.mark.asyncio
async def test_init_should_default_to_configured_limits(
    orchestrator_factory, mock_api_client: AsyncMock, mock_store: AsyncMock
) -> None:
    """
    Tests that an orchestrator built without limits uses the configuration defaults.
    """
    # Arrange
    orchestrator = orchestrator_factory()

    # Act
    await orchestrator.scan_target(TARGETS[0])

    # Assert
    assert mock_api_client.call.await_args.args[2] == DEFAULT_API_TIMEOUT
    mock_store.list_recent_runs.assert_awaited_once_with("google", DEFAULT_HISTORY_DEPTH)


@pytest.mark.asyncio
async def test_diagnose_should_send_engine_with_fixed_params(
    orchestrator_factory, mock_api_client: AsyncMock, mock_upstream_analyzer: AsyncMock
) -> None:
    """
    Tests that the engine is added to the request and a clean result is STABLE.
    """
    # Arrange
    orchestrator = orchestrator_factory(api_timeout=12.0)

    # Act
    summary = await orchestrator.diagnose(TARGETS[0])

    # Assert
    mock_api_client.call.assert_awaited_once_with(
        {"q": "coffee", "engine": "google"}, "secret", 12.0
    )
    assert summary.overall_status == Status.STABLE
    assert summary.upstream is None
    mock_upstream_analyzer.analyze.assert_not_awaited()


@pytest.mark.asyncio
async def test_diagnose_should_report_failed_api_call_as_upstream_block(
    orchestrator_factory, mock_api_client: AsyncMock, mock_deep_analyzer: AsyncMock
) -> None:
    """
    Tests that a failed API call skips both stages and resolves to UPSTREAM_BLOCK.
    """
    # Arrange
    mock_api_client.call.return_value = ApiCallResult(
        success=False, status_code=408, latency_ms=15000, error="Request timeout after 15000ms"
    )
    orchestrator = orchestrator_factory()

    # Act
    summary = await orchestrator.diagnose(TARGETS[0])

    # Assert
    assert summary.overall_status == Status.UPSTREAM_BLOCK
    assert summary.upstream is None
    assert summary.deep_analysis is None
    mock_deep_analyzer.analyze.assert_not_awaited()


@pytest.mark.asyncio
async def test_diagnose_should_resolve_most_severe_stage(
    orchestrator_factory,
    mock_api_client: AsyncMock,
    mock_deep_analyzer: AsyncMock,
    mock_upstream_analyzer: AsyncMock,
) -> None:
    """
    Tests that an upstream block outranks a critical parsing gap.
    """
    # Arrange
    payload = {"search_metadata": {"raw_html_file": RAW_URL}}
    mock_api_client.call.return_value = _ok(payload)
    mock_deep_analyzer.analyze.return_value = _report(
        MissingSection("organic_results", "d", Severity.CRITICAL, "Selector: div.g", 5)
    )
    mock_upstream_analyzer.analyze.return_value = _blocked_upstream()
    orchestrator = orchestrator_factory()

    # Act
    summary = await orchestrator.diagnose(TARGETS[0])

    # Assert
    mock_deep_analyzer.analyze.assert_awaited_once_with("google", payload)
    mock_upstream_analyzer.analyze.assert_awaited_once_with(RAW_URL)
    assert summary.overall_status == Status.UPSTREAM_BLOCK
    assert summary.deep_analysis.critical_missing == 1


@pytest.mark.asyncio
async def test_scan_target_should_persist_run_and_alerts(
    orchestrator_factory,
    mock_api_client: AsyncMock,
    mock_upstream_analyzer: AsyncMock,
    mock_store: AsyncMock,
) -> None:
    """
    Tests that a newly blocked engine is persisted with one alert per anomaly,
    each referencing the stored run.
    """
    # Arrange
    mock_api_client.call.return_value = _ok({"search_metadata": {"raw_html_file": RAW_URL}})
    mock_upstream_analyzer.analyze.return_value = _blocked_upstream()
    mock_store.list_recent_runs.return_value = [_stable_run()]
    orchestrator = orchestrator_factory(history_depth=3)

    # Act
    outcome = await orchestrator.scan_target(TARGETS[0])

    # Assert
    assert outcome.state == ScanState.DONE
    assert outcome.status == Status.UPSTREAM_BLOCK
    assert [a.type for a in outcome.anomalies] == [
        AnomalyType.UPSTREAM_BLOCK,
        AnomalyType.STATUS_CHANGE,
    ]
    mock_store.list_recent_runs.assert_awaited_once_with("google", 3)

    run = mock_store.insert_run.await_args.args[0]
    assert run.engine_id == "google"
    assert run.run_type == "scheduled"
    assert run.params == '{"q": "coffee"}'
    assert run.status == "UPSTREAM_BLOCK"
    assert load_summary(run.result) == outcome.summary
    mock_store.touch_last_run.assert_awaited_once_with("google")

    alerts = [c.args[0] for c in mock_store.insert_alert.await_args_list]
    assert len(alerts) == 2
    assert all(alert.diagnostic_run_id == run.id for alert in alerts)
    assert all(alert.alert_type == ALERT_TYPE for alert in alerts)
    assert [alert.severity for alert in alerts] == [Severity.CRITICAL, Severity.CRITICAL]


@pytest.mark.asyncio
async def test_scan_target_should_persist_failed_api_call(
    orchestrator_factory, mock_api_client: AsyncMock, mock_store: AsyncMock
) -> None:
    """
    Tests that an API failure is still recorded as an UPSTREAM_BLOCK run.
    """
    # Arrange
    mock_api_client.call.return_value = ApiCallResult(
        success=False, status_code=0, latency_ms=3, error="DNS failure"
    )
    orchestrator = orchestrator_factory()

    # Act
    outcome = await orchestrator.scan_target(TARGETS[4])

    # Assert
    assert outcome.state == ScanState.DONE
    assert outcome.status == Status.UPSTREAM_BLOCK
    run = mock_store.insert_run.await_args.args[0]
    assert run.status == "UPSTREAM_BLOCK"
    assert run.engine_id == "ebay"


@pytest.mark.asyncio
async def test_scan_target_should_fail_without_raising(
    orchestrator_factory, mock_store: AsyncMock
) -> None:
    """
    Tests that a store failure ends the scan in FAILED with the failing state.
    """
    # Arrange
    mock_store.insert_run.side_effect = RuntimeError("database unavailable")
    orchestrator = orchestrator_factory()

    # Act
    outcome = await orchestrator.scan_target(TARGETS[0])

    # Assert
    assert outcome.state == ScanState.FAILED
    assert outcome.status == Status.UPSTREAM_BLOCK
    assert outcome.summary is None
    assert outcome.error == "PERSISTING: database unavailable"
    mock_store.insert_alert.assert_not_awaited()


@pytest.mark.asyncio
async def test_scan_target_should_report_analysis_failure_as_analyzing(
    orchestrator_factory,
    mock_api_client: AsyncMock,
    mock_deep_analyzer: AsyncMock,
    mock_store: AsyncMock,
) -> None:
    """
    Tests that a crash after the API call is attributed to the analysis stage.
    """
    # Arrange
    mock_deep_analyzer.analyze.side_effect = RuntimeError("boom")
    orchestrator = orchestrator_factory()

    # Act
    outcome = await orchestrator.scan_target(TARGETS[0])

    # Assert
    mock_api_client.call.assert_awaited_once()
    assert outcome.state == ScanState.FAILED
    assert outcome.error == "ANALYZING: boom"
    mock_store.insert_run.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_pass_should_isolate_failures_and_skip_disabled(
    orchestrator_factory, mock_api_client: AsyncMock
) -> None:
    """
    Tests that one crashing engine does not affect the others of the pass.
    """

    # Arrange
    async def call(params: Mapping[str, Any], api_key: str, timeout: float) -> ApiCallResult:
        if params["engine"] == "google_news":
            raise RuntimeError("boom")
        return _ok({})

    mock_api_client.call.side_effect = call
    targets = TARGETS[:3] + [TargetConfig("ebay", "eBay", {}, enabled=False)]
    orchestrator = orchestrator_factory()

    # Act
    outcomes = await orchestrator.run_pass(targets)

    # Assert
    assert [o.engine_id for o in outcomes] == ["google", "google_shopping", "google_news"]
    assert [o.state for o in outcomes] == [ScanState.DONE, ScanState.DONE, ScanState.FAILED]
    assert outcomes[2].status == Status.UPSTREAM_BLOCK
    assert outcomes[2].error == "FETCHING: boom"


@pytest.mark.asyncio
async def test_run_pass_should_bound_concurrency(
    orchestrator_factory, mock_api_client: AsyncMock
) -> None:
    """
    Tests that no more than max_concurrency engines are scanned at once.
    """
    # Arrange
    active = 0
    peak = 0

    async def call(params: Mapping[str, Any], api_key: str, timeout: float) -> ApiCallResult:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.02)
        active -= 1
        return _ok({})

    mock_api_client.call.side_effect = call
    orchestrator = orchestrator_factory(max_concurrency=2)

    # Act
    outcomes = await orchestrator.run_pass(TARGETS)

    # Assert
    assert len(outcomes) == 6
    assert peak == 2


@pytest.mark.asyncio
async def test_trigger_scan_should_time_out_slow_engine_only(
    orchestrator_factory, mock_api_client: AsyncMock, mock_store: AsyncMock
) -> None:
    """
    Tests that a slow engine is cut at the scan limit while the others complete,
    and that the whole scan is bounded by the limit rather than by the slow engine.
    """

    # Arrange
    async def call(params: Mapping[str, Any], api_key: str, timeout: float) -> ApiCallResult:
        if params["engine"] == "naver":
            await asyncio.sleep(5)
        return _ok({})

    mock_api_client.call.side_effect = call
    orchestrator = orchestrator_factory(scan_timeout=0.2)
    loop = asyncio.get_running_loop()

    # Act
    started = loop.time()
    outcomes = await orchestrator.trigger_scan()
    elapsed = loop.time() - started

    # Assert
    assert elapsed < 1.0
    by_engine = {o.engine_id: o for o in outcomes}
    assert len(by_engine) == 6
    assert by_engine["naver"].state == ScanState.FAILED
    assert by_engine["naver"].status == Status.UPSTREAM_BLOCK
    assert by_engine["naver"].error == "Timeout after 0.2s"
    for engine_id in ("google", "google_shopping", "google_news", "youtube_video_transcript", "ebay"):
        assert by_engine[engine_id].state == ScanState.DONE
        assert by_engine[engine_id].status == Status.STABLE

    runs = [c.args[0] for c in mock_store.insert_run.await_args_list]
    assert len(runs) == 5
    assert {run.run_type for run in runs} == {"manual"}


@pytest.mark.asyncio
async def test_trigger_scan_should_scan_named_engine_even_if_disabled(
    orchestrator_factory, mock_provider: AsyncMock, mock_api_client: AsyncMock
) -> None:
    # Arrange
    mock_provider.list_targets.return_value = [
        TargetConfig("google", "Google Search", {"q": "coffee"}),
        TargetConfig("ebay", "eBay", {"_nkw": "camera"}, enabled=False),
    ]
    orchestrator = orchestrator_factory()

    # Act
    outcomes = await orchestrator.trigger_scan("ebay")

    # Assert
    assert [o.engine_id for o in outcomes] == ["ebay"]
    mock_api_client.call.assert_awaited_once()


@pytest.mark.asyncio
async def test_trigger_scan_all_should_skip_disabled_engines(
    orchestrator_factory, mock_provider: AsyncMock
) -> None:
    # Arrange
    mock_provider.list_targets.return_value = [
        TargetConfig("google", "Google Search", {"q": "coffee"}),
        TargetConfig("ebay", "eBay", {"_nkw": "camera"}, enabled=False),
    ]
    orchestrator = orchestrator_factory()

    # Act
    outcomes: List = await orchestrator.trigger_scan()

    # Assert
    assert [o.engine_id for o in outcomes] == ["google"]


@pytest.mark.asyncio
async def test_trigger_scan_should_return_nothing_for_unknown_engine(
    orchestrator_factory, mock_api_client: AsyncMock
) -> None:
    # Arrange
    orchestrator = orchestrator_factory()

    # Act
    outcomes = await orchestrator.trigger_scan("bing")

    # Assert
    assert outcomes == []
    mock_api_client.call.assert_not_awaited()

"""Parallel analyzer dispatch.

The collector has already produced a snapshot. Applicable analyzers run
concurrently on daemon worker threads; each has a deadline measured from its own
start and the whole phase has a total budget. Timeouts, crashes and budget
expiry become findings so one bad analyzer never sinks the report.
"""

from __future__ import annotations

import concurrent.futures
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .analyzers import (
    AnalyzerContext,
    BaseAnalyzer,
    PriorReport,
    get_default_analyzers,
    required_tools,
    timing_regressions,
)
from .config import HealthConfig
from .logging_config import get_logger
from .models import AnalyzerRun, Finding, FindingKind, Location, RepositorySnapshot, RunStatus, Severity
from .tools import ToolRunner, probe_tools

logger = get_logger(__name__)

COLLECTOR_SOURCE = "collector"
PIPELINE_SOURCE = "pipeline"
# Upper bound on one wait() while analyzers are still queued.
_POLL_SECONDS = 0.25


@dataclass
class PipelineResult:
    findings: List[Finding] = field(default_factory=list)
    runs: List[AnalyzerRun] = field(default_factory=list)


class AnalysisPipeline:
    """Run analyzers against a snapshot with per-analyzer and total time limits."""

    def __init__(
        self,
        config: HealthConfig,
        analyzers: Optional[Sequence[BaseAnalyzer]] = None,
        runner: Optional[ToolRunner] = None,
        prior: Optional[PriorReport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.analyzers = list(analyzers) if analyzers is not None else get_default_analyzers()
        self.runner = runner or ToolRunner()
        self.prior = prior
        self._clock = clock

    def run(self, snapshot: RepositorySnapshot) -> PipelineResult:
        result = PipelineResult()
        result.findings.extend(collection_warnings(snapshot))

        selected: List[BaseAnalyzer] = []
        for analyzer in self.analyzers:
            if not self.config.analyzer_enabled(analyzer.name):
                result.runs.append(AnalyzerRun(analyzer.name, RunStatus.SKIPPED, detail="disabled"))
            elif not analyzer.applies_to(snapshot):
                result.runs.append(
                    AnalyzerRun(analyzer.name, RunStatus.SKIPPED, detail="not applicable")
                )
            else:
                selected.append(analyzer)

        if not selected:
            logger.warning("No analyzers to run")
            return result

        context = AnalyzerContext(
            config=self.config,
            runner=self.runner,
            available_tools=probe_tools(self.runner, required_tools(selected)),
            prior=self.prior,
        )
        findings, runs = self._dispatch(selected, snapshot, context)
        result.findings.extend(findings)
        result.runs.extend(runs)

        if self.prior is not None and self.config.analyzer_enabled("performance"):
            durations = {r.name: r.duration_seconds for r in runs if r.status is RunStatus.OK}
            result.findings.extend(
                timing_regressions(self.prior, durations, self.config.regression_ratio)
            )

        order = {a.name: i for i, a in enumerate(self.analyzers)}
        result.runs.sort(key=lambda r: order.get(r.name, len(order)))
        return result

    def _dispatch(
        self,
        analyzers: List[BaseAnalyzer],
        snapshot: RepositorySnapshot,
        context: AnalyzerContext,
    ):
        config = self.config
        clock = self._clock
        started: Dict[str, float] = {}
        finished: Dict[str, float] = {}
        lock = threading.Lock()

        def invoke(analyzer: BaseAnalyzer) -> List[Finding]:
            with lock:
                started[analyzer.name] = clock()
            logger.debug(f"Running analyzer {analyzer.name}")
            try:
                return analyzer.run(snapshot, context)
            finally:
                with lock:
                    finished[analyzer.name] = clock()

        def elapsed(name: str) -> float:
            with lock:
                begin = started.get(name)
                end = finished.get(name, clock())
            return 0.0 if begin is None else max(0.0, end - begin)

        findings: List[Finding] = []
        runs: List[AnalyzerRun] = []
        budget_deadline = clock() + config.total_timeout_seconds
        futures = _start_workers(invoke, analyzers, config.workers or len(analyzers))
        pending = set(futures)

        try:
            while pending:
                now = clock()

                for future in list(pending):
                    analyzer = futures[future]
                    with lock:
                        begin = started.get(analyzer.name)
                    if begin is not None and not future.done() and now - begin >= config.analyzer_timeout_seconds:
                        pending.discard(future)
                        future.cancel()
                        logger.warning(
                            f"Analyzer {analyzer.name} exceeded {config.analyzer_timeout_seconds:g}s timeout"
                        )
                        runs.append(
                            AnalyzerRun(analyzer.name, RunStatus.TIMED_OUT, elapsed(analyzer.name))
                        )
                        findings.append(
                            _pipeline_finding(
                                FindingKind.ANALYZER_TIMEOUT,
                                Severity.INFO,
                                f"Analyzer '{analyzer.name}' timed out after "
                                f"{config.analyzer_timeout_seconds:g}s; its checks were not applied",
                            )
                        )

                if not pending:
                    break

                if now >= budget_deadline:
                    for future in sorted(pending, key=lambda f: futures[f].name):
                        analyzer = futures[future]
                        future.cancel()
                        logger.warning(f"Analyzer {analyzer.name} abandoned: total budget exhausted")
                        runs.append(
                            AnalyzerRun(analyzer.name, RunStatus.ABANDONED, elapsed(analyzer.name))
                        )
                        findings.append(
                            _pipeline_finding(
                                FindingKind.ANALYZER_TIMEOUT,
                                Severity.INFO,
                                f"Analyzer '{analyzer.name}' abandoned: total budget of "
                                f"{config.total_timeout_seconds:g}s exhausted",
                            )
                        )
                    pending.clear()
                    break

                wait_for = budget_deadline - now
                with lock:
                    for future in pending:
                        begin = started.get(futures[future].name)
                        if begin is None:
                            wait_for = min(wait_for, _POLL_SECONDS)
                        else:
                            wait_for = min(wait_for, begin + config.analyzer_timeout_seconds - now)
                done, pending = concurrent.futures.wait(
                    pending,
                    timeout=max(wait_for, 0.01),
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )

                for future in done:
                    analyzer = futures[future]
                    duration = elapsed(analyzer.name)
                    try:
                        produced = future.result()
                    except Exception as e:
                        logger.warning(f"Analyzer {analyzer.name} failed: {e}")
                        logger.debug(f"Analyzer {analyzer.name} traceback", exc_info=True)
                        runs.append(
                            AnalyzerRun(
                                analyzer.name,
                                RunStatus.FAILED,
                                duration,
                                detail=f"{type(e).__name__}: {e}",
                            )
                        )
                        findings.append(
                            _pipeline_finding(
                                FindingKind.ANALYZER_ERROR,
                                analyzer.failure_severity,
                                f"Analyzer '{analyzer.name}' failed: {type(e).__name__}: {e}",
                            )
                        )
                        continue
                    logger.debug(
                        f"Analyzer {analyzer.name} finished in {duration:.2f}s "
                        f"with {len(produced)} findings"
                    )
                    runs.append(AnalyzerRun(analyzer.name, RunStatus.OK, duration, len(produced)))
                    findings.extend(produced)
        finally:
            # Queued work is dropped; running workers are daemons and die with the process.
            for future in futures:
                future.cancel()

        return findings, runs


def _start_workers(
    invoke: Callable[[BaseAnalyzer], List[Finding]],
    analyzers: Sequence[BaseAnalyzer],
    count: int,
) -> Dict["concurrent.futures.Future[List[Finding]]", BaseAnalyzer]:
    """Run ``invoke`` over ``analyzers`` on ``count`` daemon threads.

    Daemon workers let the process exit while a timed-out analyzer (or the
    tool it is waiting on) is still running. Cancelled futures are skipped.
    """
    tasks: queue.Queue = queue.Queue()
    futures: Dict["concurrent.futures.Future[List[Finding]]", BaseAnalyzer] = {}
    for analyzer in analyzers:
        future: "concurrent.futures.Future[List[Finding]]" = concurrent.futures.Future()
        futures[future] = analyzer
        tasks.put((future, analyzer))

    def work() -> None:
        while True:
            item = tasks.get()
            if item is None:
                return
            future, analyzer = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(invoke(analyzer))
            except Exception as e:
                future.set_exception(e)

    count = max(1, min(count, len(analyzers)))
    for _ in range(count):
        tasks.put(None)
    for i in range(count):
        threading.Thread(target=work, name=f"repo-health-{i}", daemon=True).start()
    return futures


def collection_warnings(snapshot: RepositorySnapshot) -> List[Finding]:
    """Info findings for everything the collector could not include."""
    findings = [
        Finding(
            kind=FindingKind.COLLECTION_WARNING,
            severity=Severity.INFO,
            source=COLLECTOR_SOURCE,
            message="Path could not be read and was not analyzed",
            location=Location(path),
        )
        for path in snapshot.unreadable_paths
    ]
    if snapshot.skipped_symlinks:
        findings.append(
            Finding(
                kind=FindingKind.COLLECTION_WARNING,
                severity=Severity.INFO,
                source=COLLECTOR_SOURCE,
                message=f"{len(snapshot.skipped_symlinks)} symbolic link(s) not followed",
            )
        )
    if snapshot.truncated:
        findings.append(
            Finding(
                kind=FindingKind.COLLECTION_WARNING,
                severity=Severity.INFO,
                source=COLLECTOR_SOURCE,
                message=f"File limit reached; only {snapshot.file_count} files were analyzed",
            )
        )
    return findings


def _pipeline_finding(kind: FindingKind, severity: Severity, message: str) -> Finding:
    return Finding(kind=kind, severity=severity, source=PIPELINE_SOURCE, message=message)

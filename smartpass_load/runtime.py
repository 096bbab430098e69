"""
Per-run state and Locust event wiring.

One :class:`LoadTestRuntime` is attached to each Locust
``Environment``.  It holds the selected :class:`LoadProfile`, the run's
:class:`MetricRegistry`, and for shared-iterations profiles the
:class:`IterationBudget`.  :func:`install` hooks it into Locust's
events:

- ``test_start`` / ``test_stop`` log the run boundaries and mark the
  start time every process paces against
- ``report_to_master`` / ``worker_report`` ship custom metrics and
  finished iterations from workers to the master
- ``quitting`` evaluates the profile's thresholds on the master (or the
  local runner) and sets a non-zero exit code on breach

Distributed shared-iterations runs split the budget on the master: at
test start each connected worker is sent its quota as an
``ITERATION_QUOTA_MESSAGE``, and the master's own budget counts the
completions workers report, so its shape ends the run once the whole
budget is done.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from locust.runners import STATE_MISSING, MasterRunner, WorkerRunner

from smartpass_load.metrics import MetricRegistry, resolve_metric
from smartpass_load.profiles import Executor
from smartpass_load.thresholds import (
    ThresholdResult,
    all_passed,
    evaluate_thresholds,
    format_summary,
)

if TYPE_CHECKING:
    from locust.env import Environment
    from locust.stats import RequestStats

    from smartpass_load.profiles import LoadProfile

logger = logging.getLogger(__name__)

# Keys under which workers send custom metric snapshots and finished
# iteration counts to the master.
WORKER_REPORT_KEY = "smartpass_metrics"
ITERATIONS_REPORT_KEY = "smartpass_iterations"

# Master -> worker message carrying that worker's share of the budget.
ITERATION_QUOTA_MESSAGE = "smartpass_iteration_quota"


class IterationBudget:
    """Iteration count shared by every user of a profile in one process."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.claimed = 0
        self.completed = 0
        self.reported = 0

    def claim(self) -> bool:
        """Reserve one iteration; ``False`` once the budget is spent."""
        if self.claimed >= self.total:
            return False
        self.claimed += 1
        return True

    def complete(self, count: int = 1) -> None:
        self.completed += count

    def unreported(self) -> int:
        """Completions since the last call, for the next worker report."""
        delta = self.completed - self.reported
        self.reported = self.completed
        return delta

    @property
    def exhausted(self) -> bool:
        return self.claimed >= self.total

    @property
    def finished(self) -> bool:
        return self.completed >= self.total


def split_iterations(total: int, worker_ids: list[str]) -> dict[str, int]:
    """
    Divide *total* iterations across workers as evenly as possible.

    The first ``total % len(worker_ids)`` workers (in sorted id order)
    take one extra iteration.
    """
    ordered = sorted(worker_ids)
    if not ordered:
        return {}
    share, remainder = divmod(total, len(ordered))
    return {worker_id: share + (1 if index < remainder else 0) for index, worker_id in enumerate(ordered)}


class LoadTestRuntime:
    """
    State of one load-test run.

    Attributes:
        profile: Selected load profile, or ``None`` when the locustfile
            runs with plain ``-u``/``-r`` options.
        metrics: Custom metrics recorded by the iteration drivers.
        budget: Iteration budget for shared-iterations profiles.
        shape: The load shape driving the run, if any.
        started_at: ``time.monotonic()`` of this process's test start.
    """

    def __init__(self, profile: LoadProfile | None = None) -> None:
        self.profile = profile
        self.metrics = MetricRegistry()
        self.budget: IterationBudget | None = None
        if profile is not None and profile.executor is Executor.SHARED_ITERATIONS:
            self.budget = IterationBudget(profile.iterations)
        self.shape: Any = None
        self.started_at: float | None = None

    def elapsed(self) -> float | None:
        """Seconds since the run started, or ``None`` before it has."""
        if self.started_at is not None:
            return time.monotonic() - self.started_at
        if self.shape is not None:
            return self.shape.get_run_time()
        return None

    def current_rate(self) -> float | None:
        """Target iteration starts per second right now, for arrival-rate profiles."""
        if self.profile is None:
            return None
        elapsed = self.elapsed()
        if elapsed is None:
            return None
        return self.profile.rate_at(elapsed)

    def run_users(self) -> int | None:
        """Users the profile runs across all processes right now."""
        if self.profile is None:
            return None
        elapsed = self.elapsed()
        if elapsed is None:
            return None
        return self.profile.users_at(elapsed)

    def is_idle(self) -> bool:
        """Whether an arrival-rate profile currently asks for no iterations."""
        rate = self.current_rate()
        return rate is not None and rate <= 0

    def evaluate(self, stats: RequestStats | None) -> list[ThresholdResult]:
        """Evaluate the profile's thresholds against *stats* and the custom metrics."""
        if self.profile is None:
            return []

        def resolve(name: str, tag: tuple[str, str] | None):
            return resolve_metric(name, tag, stats=stats, registry=self.metrics)

        return evaluate_thresholds(list(self.profile.thresholds), resolve)


def runtime_for(environment: Environment) -> LoadTestRuntime:
    """Return the runtime attached to *environment*, attaching a bare one if needed."""
    runtime = getattr(environment, "load_runtime", None)
    if runtime is None:
        runtime = LoadTestRuntime()
        environment.load_runtime = runtime
    return runtime


def install(environment: Environment, profile: LoadProfile | None) -> LoadTestRuntime:
    """
    Attach a fresh runtime for *profile* to *environment* and register listeners.

    Args:
        environment: The Locust environment passed to the ``init`` event.
        profile: The profile selected for this run.

    Returns:
        The installed runtime.
    """
    runtime = LoadTestRuntime(profile)
    environment.load_runtime = runtime

    shape = getattr(environment, "shape_class", None)
    if shape is not None and hasattr(shape, "configure"):
        shape.configure(runtime)
        runtime.shape = shape

    if isinstance(environment.runner, WorkerRunner):
        environment.runner.register_message(ITERATION_QUOTA_MESSAGE, _quota_receiver(runtime))

    events = environment.events

    @events.test_start.add_listener
    def _log_test_start(environment, **_kwargs):
        runtime.started_at = time.monotonic()
        profile_name = runtime.profile.name if runtime.profile else "(none)"
        logger.info("Base URL: %s", environment.host)
        logger.info("Running load profile %s...", profile_name)
        if runtime.budget is not None and isinstance(environment.runner, MasterRunner):
            send_iteration_quotas(environment.runner, runtime.budget.total)

    @events.test_stop.add_listener
    def _log_test_stop(environment, **_kwargs):
        profile_name = runtime.profile.name if runtime.profile else "(none)"
        logger.info("Load profile %s finished", profile_name)

    @events.report_to_master.add_listener
    def _ship_metrics(client_id, data):
        data[WORKER_REPORT_KEY] = runtime.metrics.snapshot()
        runtime.metrics.reset()
        if runtime.budget is not None:
            data[ITERATIONS_REPORT_KEY] = runtime.budget.unreported()

    @events.worker_report.add_listener
    def _collect_metrics(client_id, data):
        snapshot = data.get(WORKER_REPORT_KEY)
        if snapshot:
            runtime.metrics.merge(snapshot)
        completed = data.get(ITERATIONS_REPORT_KEY)
        if completed and runtime.budget is not None:
            runtime.budget.complete(int(completed))

    @events.quitting.add_listener
    def _check_thresholds(environment, **_kwargs):
        if _is_worker(environment):
            return
        results = runtime.evaluate(environment.stats)
        if not results:
            return
        logger.info("\n%s", format_summary(results))
        if not all_passed(results):
            logger.error("Thresholds breached for profile %s", runtime.profile.name)
            environment.process_exit_code = 1

    return runtime


def send_iteration_quotas(runner: Any, total: int) -> dict[str, int]:
    """
    Send every connected worker its share of a shared-iterations budget.

    Args:
        runner: The master runner.
        total: Iterations the whole run may execute.

    Returns:
        The quota sent to each worker id.
    """
    worker_ids = [node.id for node in runner.clients.values() if node.state != STATE_MISSING]
    quotas = split_iterations(total, worker_ids)
    for worker_id, quota in quotas.items():
        runner.send_message(ITERATION_QUOTA_MESSAGE, quota, client_id=worker_id)
    logger.info("Split %d iterations across %d workers", total, len(quotas))
    return quotas


def apply_iteration_quota(runtime: LoadTestRuntime, quota: int) -> None:
    """Limit this process's budget to the share the master assigned it."""
    if runtime.budget is None:
        return
    runtime.budget.total = int(quota)
    logger.info("Iteration quota for this worker: %d", runtime.budget.total)


def _quota_receiver(runtime: LoadTestRuntime):
    def receive_quota(environment, msg, **_kwargs):
        apply_iteration_quota(runtime, msg.data)

    return receive_quota


def _is_worker(environment: Environment) -> bool:
    return isinstance(environment.runner, WorkerRunner)

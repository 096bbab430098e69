"""
Locust load shape and pacing driven by the selected profile.

Locust picks up :class:`ProfileShape` from the locustfile and calls
:meth:`~ProfileShape.tick` once per second; the shape answers with the
user count the selected :class:`~smartpass_load.profiles.LoadProfile`
wants at that moment.  Arrival-rate profiles keep a fixed user count
and throttle each user with :func:`arrival_rate_pacing` instead.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

from locust import LoadTestShape

from smartpass_load.runtime import runtime_for

if TYPE_CHECKING:
    from locust import User

    from smartpass_load.profiles import LoadProfile
    from smartpass_load.runtime import IterationBudget, LoadTestRuntime

# Seconds between re-checks while an arrival-rate stage asks for no iterations.
IDLE_POLL_INTERVAL = 1.0


class ProfileShape(LoadTestShape):
    """
    Load shape that replays a :class:`LoadProfile` timeline.

    The shape is configured from the ``init`` event once the profile has
    been chosen; an unconfigured shape stops the run immediately.
    """

    profile: LoadProfile | None = None
    budget: IterationBudget | None = None

    def configure(self, runtime: LoadTestRuntime) -> None:
        self.profile = runtime.profile
        self.budget = runtime.budget

    def tick(self):
        if self.profile is None:
            return None
        # Shared-iterations runs end as soon as every iteration finished.
        if self.budget is not None and self.budget.finished:
            return None

        users = self.profile.users_at(self.get_run_time())
        if users is None:
            return None
        return users, max(users, 1)


def arrival_interval(rate: float, user_count: int) -> float:
    """
    Seconds between iteration starts of one user.

    With ``user_count`` users across the whole run each starting an
    iteration every ``user_count / rate`` seconds, the run as a whole
    starts ``rate`` iterations per second, however the users are spread
    over worker processes.
    """
    if rate <= 0:
        return 0.0
    return max(user_count, 1) / rate


def arrival_rate_pacing(think_time: float) -> Callable[[User], float]:
    """
    Wait-time function that paces users to the profile's arrival rate.

    Falls back to a constant *think_time* whenever the active profile is
    not arrival-rate based.  Time spent inside the task counts against
    the interval, the same way :func:`locust.constant_pacing` works.
    While an arrival-rate stage sits at zero, users re-check every
    :data:`IDLE_POLL_INTERVAL` seconds and skip their iterations.

    Args:
        think_time: Seconds to wait between iterations under VU-based
            profiles.

    Returns:
        A callable suitable as a Locust ``wait_time``.
    """

    def wait_time_func(user: User) -> float:
        runtime = runtime_for(user.environment)
        rate = runtime.current_rate()
        if rate is None:
            return think_time
        if rate <= 0:
            user._arrival_last_run = None
            return IDLE_POLL_INTERVAL

        # Pace against the run-wide user count, not this process's share.
        user_count = runtime.run_users()
        if user_count is None:
            runner = user.environment.runner
            user_count = runner.user_count if runner is not None else 1
        interval = arrival_interval(rate, user_count)

        now = time.monotonic()
        last_run = getattr(user, "_arrival_last_run", None)
        last_wait = getattr(user, "_arrival_last_wait", 0.0)
        run_time = 0.0 if last_run is None else now - last_run - last_wait

        wait = max(0.0, interval - run_time)
        user._arrival_last_run = now
        user._arrival_last_wait = wait
        return wait

    return wait_time_func

"""
SmartPass API load-testing library.

Request builders, API clients, purchase orchestration and run-level
metric/threshold handling shared by the Locust scenarios under
``tests/performance``.

Modules:

- :mod:`.config` - environment-driven settings
- :mod:`.auth` - Basic-Auth/JSON header builders
- :mod:`.inventory` - inventory holds and season-pass listings
- :mod:`.payments` / :mod:`.seasonpass` - purchase calls and flows
- :mod:`.flow` - submit-then-maybe-complete purchase primitive
- :mod:`.drivers` - one iteration of each scenario
- :mod:`.metrics` / :mod:`.thresholds` - run metrics and pass/fail gates
- :mod:`.profiles` / :mod:`.shapes` / :mod:`.runtime` - load profiles
  and their Locust wiring
"""

"""
Test suite for the SmartPass load-test toolkit.

This package contains:
- unit/: fast tests for the request helpers, flows, metrics, thresholds
  and load profiles, using a fake HTTP client
- performance/: the Locust suite itself (entrypoint, scenarios, profiles)
"""

"""
Performance testing package (Locust-based).

Contains the Locust entrypoint, scenario user classes, the load profile
catalogue (:file:`profiles.yml`) and an offline threshold checker for
the SmartPass payment and ticketing API.

Traffic goes straight to the public API with Basic-Auth credentials,
the same path the external purchase widgets take.

Key Concepts Demonstrated:
- Profile-driven load shapes (ramping users, arrival rates, shared
  iteration budgets) selected with ``--profile``
- Tagged scenarios so CI can run subsets via ``--tags``
- Threshold gates that set Locust's exit code and can be re-checked
  from ``--csv`` output
"""

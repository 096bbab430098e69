"""
Locust scenario user classes.

Each module in this package defines one Locust ``HttpUser`` subclass
that models a specific traffic pattern:

- :mod:`.payments_flow` - purchases against a pre-created hold
- :mod:`.complete_purchase` - hold creation followed by purchase and
  optional payment completion

Both inherit from the abstract base class in :mod:`.base`, which loads
configuration, builds the Basic-Auth headers, and tracks the virtual
user's identity.
"""

"""Core mathematics and value types for the Race Edge model.

This package contains pure building blocks:

- ``odds_math``    implied probability, overround removal, bucket
  classification, payout and profit/loss
- ``records``      immutable value types (events, bucket statistics,
  signal weights, model state, betting history)
- ``bet_sizing``   stake sizing and confidence assessment

Nothing in this package imports from ``race_edge.services`` or
``race_edge.models``. All modules are side-effect-free and unit-testable in
isolation.
"""

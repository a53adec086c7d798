"""Core mathematics, vocabulary and contracts for the Match Edge engine.

This package contains pure, deterministic building blocks:

- ``odds_math``     — de-margining (fair probabilities + vigorish), odds combinators
- ``vocabulary``    — closed enumerations for markets, fields, operators, actions
- ``rules``         — condition / rule value objects and their validation
- ``match``         — match odds records and fair-market construction
- ``context``       — flat numeric evaluation context for one match
- ``rule_engine``   — left-to-right evaluation of a rule against a context
- ``confidence``    — qualitative confidence labels for display
- ``engine_config`` — every tunable constant in one frozen dataclass
- ``stores``        — Rule Store / Match Store interfaces

Nothing in this package imports from ``matchedge.services`` or
``matchedge.models``.
"""

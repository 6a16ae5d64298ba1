"""
Core domain models, mathematical primitives, and invariants.

Fixed-point math, funding and perp math, immutable domain models, typed
errors, clock and the transaction journal. Independent of the market
components built on top of them.
"""

"""
Test suite for perp-engine

Contains:
- tests/conftest.py    : MarketHarness and shared fixtures
- tests/unit/          : Unit tests for math, domain models and market components,
                         plus randomized conservation scenarios
"""

"""Tests package for the tweet market engine.

Covers the constant-product pricing engine, the portfolio ledger, virality
scoring, the market registry, reporting and the agent-based demo market.
Tests run without external dependencies via tests/run_tests.py.
"""

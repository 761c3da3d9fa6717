"""
Core modules for AI Gateway.

This package contains the cost ledger, response cache, retry policy,
model adapters, invocation orchestrator and vector analytics.
"""

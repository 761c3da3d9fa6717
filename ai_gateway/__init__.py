"""
AI Gateway.

Brokers calls to metered, rate-limited inference APIs with budget admission
control, response caching, retries with model fallback, and embedding analytics.
"""

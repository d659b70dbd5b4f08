"""Rate limiting adapters.

The throttling dependency talks to ``AbstractRateLimitStore`` only; the
database-backed store persists counters through the active backend so the
limit holds across serverless instances and worker processes.
"""

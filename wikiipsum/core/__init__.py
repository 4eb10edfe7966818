"""Core Application Layer: the concurrent retrieval pipeline.

Dispatches rate-limited fetch attempts, aggregates their outcomes into the
output sink and coordinates shutdown.
"""

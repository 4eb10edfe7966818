"""API Resilience Implementations.

Contains the token-bucket rate gate, retries with exponential backoff and
the stop-event helpers they share.
Bounded Context: API Resilience
"""

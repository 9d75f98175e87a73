"""
Courier - outbound delivery pipeline for multi-channel agents.

Producers publish messages onto an in-memory bus; the dispatch service
drains it and hands each message to the registered chat channel with
rate limiting, dedupe, backoff, circuit breaking and dead-lettering.
"""

__version__ = "0.1.0"

"""Real-time vital-sign alerting for senior-care facilities.

This package contains the alerting engine: threshold evaluation, fall
detection, alert deduplication and lifecycle, and event fanout. Persistence
and delivery collaborators are expressed as protocols so the engine can be
tested and reasoned about in isolation.
"""

"""
Core infrastructure layer for modulebus.

Subpackages
-----------
- config: static environment settings and the layered ConfigManager
- logging: structured, queue-backed logging and LogContext
- infra: health probe aggregation
- event: the dispatch engine and its supervising system
"""

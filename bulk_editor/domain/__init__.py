"""
Domain layer for the catalog bulk editor.

This layer contains transformation specs, operation records, payloads
and value objects used by the bulk job orchestrator.
"""

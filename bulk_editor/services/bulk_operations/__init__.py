"""
Bulk operations services package.

This package contains the bulk job lifecycle: preview computation, job
file serialization, submission, polling, reconciliation, result parsing
and undo.
"""

"""
linkspine - record-relationship reconciliation and milestone windowing
for a hosted spreadsheet-database.

- linkspine.core: records, errors, logging, settings, repository protocol
- linkspine.repositories: in-memory and REST-backed record stores
- linkspine.execution: retry strategies and the batch dispatcher
- linkspine.reconcile: link synchronization, select mirroring, pruning
- linkspine.windows: version ordering, milestone periods, metric aggregation
"""

__version__ = "0.3.0"

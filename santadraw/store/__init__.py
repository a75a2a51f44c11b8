"""Group store adapters.

Concrete stores live in :mod:`santadraw.store.sql` and
:mod:`santadraw.store.rest` and are imported explicitly.
"""

from .base import UNSET, GroupRecord, GroupStore

__all__ = ["GroupRecord", "GroupStore", "UNSET"]

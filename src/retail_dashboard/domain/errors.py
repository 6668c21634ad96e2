"""
Error taxonomy shared by the reactive graph, the pipelines and the engines.

Every failure a reader can observe is a DashboardError subclass.
PreconditionMissing is the expected "not ready yet" state (e.g. no file chosen),
all the others are true errors.
"""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for every error surfaced at a node boundary."""


class PreconditionMissing(DashboardError):
    """A required upstream input has not been provided yet."""


class SchemaMismatch(DashboardError):
    """Input rows are malformed or inconsistent with the expected columns."""


class InvalidParameter(DashboardError):
    """Cluster count, support or confidence is outside its domain."""


class InsufficientData(DashboardError):
    """Not enough data to run an engine (no transactions, too few points)."""


class ComputationFailure(DashboardError):
    """Unexpected internal fault while computing a node."""


class ComputationPending(DashboardError):
    """The node is being recomputed on a worker; no value can be returned yet."""

from retail_dashboard.domain.config import DashboardConfig
from retail_dashboard.domain.errors import (
    ComputationFailure,
    ComputationPending,
    DashboardError,
    InsufficientData,
    InvalidParameter,
    PreconditionMissing,
    SchemaMismatch,
)
from retail_dashboard.reactive.graph import ReactiveGraph, ReactiveNode
from retail_dashboard.session import DashboardSession

__all__ = [
    "ComputationFailure",
    "ComputationPending",
    "DashboardConfig",
    "DashboardError",
    "DashboardSession",
    "InsufficientData",
    "InvalidParameter",
    "PreconditionMissing",
    "ReactiveGraph",
    "ReactiveNode",
    "SchemaMismatch",
]

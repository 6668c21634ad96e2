from retail_dashboard.reactive.graph import ABSENT, ReactiveGraph, ReactiveNode

__all__ = ["ABSENT", "ReactiveGraph", "ReactiveNode"]

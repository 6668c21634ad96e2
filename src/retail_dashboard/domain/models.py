"""
Immutable result types produced by the engines.

Each recomputation of a node builds fresh instances; nothing here is mutated
after construction. `to_frame()` helpers give the rendering layer a pandas view.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import pandas as pd

ItemKey = Tuple[str, ...]
Point = Tuple[float, float]


@dataclass(frozen=True)
class Itemset:
    items: ItemKey  # sorted labels
    count: int
    support: float

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class Rule:
    antecedent: ItemKey
    consequent: ItemKey
    antecedent_support: float
    consequent_support: float
    support: float
    confidence: float
    lift: float

    @property
    def items(self) -> ItemKey:
        return tuple(sorted(self.antecedent + self.consequent))


@dataclass(frozen=True)
class MiningResult:
    n_transactions: int
    min_support: float
    itemsets: Tuple[Itemset, ...]

    def support_of(self, items: ItemKey) -> float:
        key = tuple(sorted(items))
        for its in self.itemsets:
            if its.items == key:
                return its.support
        raise KeyError(f"Itemset {key} is not frequent")

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "itemsets": [frozenset(i.items) for i in self.itemsets],
                "length": [len(i) for i in self.itemsets],
                "count": [i.count for i in self.itemsets],
                "support": [i.support for i in self.itemsets],
            },
            columns=["itemsets", "length", "count", "support"],
        )


def rules_to_frame(rules: Tuple[Rule, ...]) -> pd.DataFrame:
    """Same column naming as mlxtend's association_rules output."""
    columns = [
        "antecedents",
        "consequents",
        "antecedent support",
        "consequent support",
        "support",
        "confidence",
        "lift",
    ]
    rows = [
        (
            frozenset(r.antecedent),
            frozenset(r.consequent),
            r.antecedent_support,
            r.consequent_support,
            r.support,
            r.confidence,
            r.lift,
        )
        for r in rules
    ]
    return pd.DataFrame(rows, columns=columns)


@dataclass(frozen=True)
class KMeansResult:
    labels: Tuple[int, ...]
    centroids: Tuple[Point, ...]
    n_iter: int
    converged: bool
    inertia: float

    @property
    def k(self) -> int:
        return len(self.centroids)

    def centroids_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(i, c[0], c[1]) for i, c in enumerate(self.centroids)],
            columns=["cluster", "age", "total_spending"],
        )


@dataclass(frozen=True)
class Segmentation:
    """Clustering node value: one row per (customer, age) group plus the fit."""

    assignments: pd.DataFrame  # customer_id, age, total_spending, cluster
    result: KMeansResult
    silhouette: Optional[float] = None

r"""
DashboardSession

One session = one ReactiveGraph. The session exposes the three boundaries the
presentation layer talks to:

- ingestion: select_file()
- configuration: set_cluster_count(), set_min_support(), set_min_confidence()
- reads: cleaned_table(), cluster_assignments(), association_rules(), plus the
  aggregation views for charts

Graph layout (inputs in brackets):

    [upload] -> raw_table -> cleaned_table -+-> segmentation <- [n_clusters]
                                            |        \-> cluster_summary
                                            +-> frequent_itemsets <- [min_support]
                                            |        \-> association_rules <- [min_confidence]
                                            +-> by_payment_type / by_age / by_city
                                            \-> spending_distribution

Invalid configuration values are accepted by the setters and reported as
InvalidParameter by the nodes that consume them.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Any, Optional, Tuple

import pandas as pd

from retail_dashboard.domain.config import THRESHOLD_MIN, DashboardConfig, check_cluster_count, check_threshold
from retail_dashboard.domain.errors import ComputationPending, DashboardError, PreconditionMissing
from retail_dashboard.domain.models import MiningResult, Rule, Segmentation, rules_to_frame
from retail_dashboard.pipelines import aggregations
from retail_dashboard.pipelines.association_rules import run_itemset_mining, run_rule_generation
from retail_dashboard.pipelines.cleaning import run_cleaning
from retail_dashboard.pipelines.ingestion import CsvSource, load_raw_table
from retail_dashboard.pipelines.segmentation import run_segmentation, summarize_clusters
from retail_dashboard.reactive.graph import ReactiveGraph
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)

# inputs
UPLOAD = "upload"
N_CLUSTERS = "n_clusters"
MIN_SUPPORT = "min_support"
MIN_CONFIDENCE = "min_confidence"

# computed nodes
RAW_TABLE = "raw_table"
CLEANED_TABLE = "cleaned_table"
SEGMENTATION = "segmentation"
CLUSTER_SUMMARY = "cluster_summary"
FREQUENT_ITEMSETS = "frequent_itemsets"
ASSOCIATION_RULES = "association_rules"
BY_PAYMENT_TYPE = "by_payment_type"
BY_AGE = "by_age"
BY_CITY = "by_city"
SPENDING_DISTRIBUTION = "spending_distribution"


class DashboardSession:
    def __init__(
        self,
        config: Optional[DashboardConfig] = None,
        *,
        name: str = "session",
        executor: Optional[Executor] = None,
    ) -> None:
        self.config = config or DashboardConfig()
        self.config.validate()
        self.graph = ReactiveGraph(name, executor=executor)
        self._build_graph()

    # ------------------------------------------------------------------
    # Graph wiring
    # ------------------------------------------------------------------
    def _build_graph(self) -> None:
        cfg = self.config
        g = self.graph

        g.input(UPLOAD)
        g.input(N_CLUSTERS, cfg.n_clusters)
        g.input(MIN_SUPPORT, cfg.min_support)
        g.input(MIN_CONFIDENCE, cfg.min_confidence)

        g.declare(RAW_TABLE, [UPLOAD], load_raw_table)
        g.declare(CLEANED_TABLE, [RAW_TABLE], lambda raw: run_cleaning(raw, cfg))

        g.declare(SEGMENTATION, [CLEANED_TABLE, N_CLUSTERS], self._segment)
        g.declare(CLUSTER_SUMMARY, [SEGMENTATION], lambda seg: summarize_clusters(seg, cfg))

        g.declare(FREQUENT_ITEMSETS, [CLEANED_TABLE, MIN_SUPPORT], self._mine)
        g.declare(ASSOCIATION_RULES, [FREQUENT_ITEMSETS, MIN_CONFIDENCE], self._rules)

        g.declare(BY_PAYMENT_TYPE, [CLEANED_TABLE], lambda df: aggregations.by_payment_type(df, cfg))
        g.declare(BY_AGE, [CLEANED_TABLE], lambda df: aggregations.by_age(df, cfg))
        g.declare(BY_CITY, [CLEANED_TABLE], lambda df: aggregations.by_city(df, cfg))
        g.declare(SPENDING_DISTRIBUTION, [CLEANED_TABLE], lambda df: aggregations.spending_distribution(df, cfg))

    def _segment(self, clean_df: pd.DataFrame, n_clusters: Any) -> Segmentation:
        return run_segmentation(clean_df, check_cluster_count(n_clusters), self.config)

    def _mine(self, clean_df: pd.DataFrame, min_support: Any) -> MiningResult:
        support = check_threshold(MIN_SUPPORT, min_support, lower=THRESHOLD_MIN)
        return run_itemset_mining(clean_df, support, self.config)

    def _rules(self, mined: MiningResult, min_confidence: Any) -> Tuple[Rule, ...]:
        confidence = check_threshold(MIN_CONFIDENCE, min_confidence, lower=THRESHOLD_MIN)
        return run_rule_generation(mined, confidence, self.config)

    # ------------------------------------------------------------------
    # Ingestion / configuration boundary
    # ------------------------------------------------------------------
    def select_file(self, source: CsvSource) -> None:
        """A new file fully replaces the previous one."""
        self.graph.set(UPLOAD, source, force=True)

    def clear_file(self) -> None:
        self.graph.clear(UPLOAD)

    def set_cluster_count(self, k: Any) -> bool:
        return self.graph.set(N_CLUSTERS, k)

    def set_min_support(self, value: Any) -> bool:
        return self.graph.set(MIN_SUPPORT, value)

    def set_min_confidence(self, value: Any) -> bool:
        return self.graph.set(MIN_CONFIDENCE, value)

    # ------------------------------------------------------------------
    # Read boundary
    # ------------------------------------------------------------------
    def cleaned_table(self) -> pd.DataFrame:
        return self.graph.read(CLEANED_TABLE).copy()

    def segmentation(self) -> Segmentation:
        return self.graph.read(SEGMENTATION)

    def cluster_assignments(self) -> pd.DataFrame:
        return self.segmentation().assignments.copy()

    def cluster_centroids(self) -> pd.DataFrame:
        return self.segmentation().result.centroids_frame()

    def cluster_summary(self) -> pd.DataFrame:
        return self.graph.read(CLUSTER_SUMMARY).copy()

    def frequent_itemsets(self) -> pd.DataFrame:
        return self.graph.read(FREQUENT_ITEMSETS).to_frame()

    def rules(self) -> Tuple[Rule, ...]:
        return self.graph.read(ASSOCIATION_RULES)

    def association_rules(self) -> pd.DataFrame:
        return rules_to_frame(self.rules())

    def payment_summary(self) -> pd.DataFrame:
        return self.graph.read(BY_PAYMENT_TYPE).copy()

    def age_summary(self) -> pd.DataFrame:
        return self.graph.read(BY_AGE).copy()

    def city_summary(self) -> pd.DataFrame:
        return self.graph.read(BY_CITY).copy()

    def spending_distribution(self) -> pd.DataFrame:
        return self.graph.read(SPENDING_DISTRIBUTION).copy()

    # ------------------------------------------------------------------
    # Background evaluation / status
    # ------------------------------------------------------------------
    def refresh_async(self, node_id: str) -> Future:
        """Recompute a node on the session executor."""
        return self.graph.submit(node_id)

    def status(self, node_id: str) -> str:
        """
        "ready", "not_ready" (an input is missing), "pending" (being computed
        on a worker) or "error".
        """
        try:
            self.graph.peek(node_id)
        except PreconditionMissing:
            return "not_ready"
        except ComputationPending:
            return "pending"
        except DashboardError:
            return "error"
        return "ready"

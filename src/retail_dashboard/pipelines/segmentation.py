from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from sklearn.metrics import silhouette_score

from traccia import Trail, step

from retail_dashboard.algorithms.kmeans import kmeans
from retail_dashboard.domain.config import DashboardConfig, check_cluster_count
from retail_dashboard.domain.errors import InsufficientData
from retail_dashboard.domain.footprint import SegmentationFootprint
from retail_dashboard.domain.models import Segmentation
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)

SPENDING_COL = "total_spending"
CLUSTER_COL = "cluster"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def aggregate_customers(clean_df: pd.DataFrame, cfg: DashboardConfig) -> pd.DataFrame:
    """
    One row per distinct (customer, age) group, spending summed over the
    group's rows. Groups keep first-appearance order.
    """
    out = (
        clean_df.groupby([cfg.col_customer_id, cfg.col_age], sort=False)[cfg.col_total]
        .sum()
        .reset_index()
        .rename(columns={cfg.col_total: SPENDING_COL})
    )
    return out


def _distinct_points(customers: pd.DataFrame, cfg: DashboardConfig) -> int:
    return int(len(customers[[cfg.col_age, SPENDING_COL]].drop_duplicates()))


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------
@step("build_points")
def build_points(fp: SegmentationFootprint) -> SegmentationFootprint:
    """(age, total_spending) in raw units; no scaling."""
    cfg = fp.config
    customers = fp.customers

    fp.points = customers[[cfg.col_age, SPENDING_COL]].to_numpy(dtype=float)
    fp.get_metadata().add_extra("customers", int(len(customers)))
    return fp


@step("fit_kmeans")
def fit_kmeans(fp: SegmentationFootprint) -> SegmentationFootprint:
    cfg = fp.config
    result = kmeans(
        fp.points,
        fp.n_clusters,
        max_iter=cfg.kmeans_max_iter,
        random_state=cfg.random_state,
    )

    fp.result = result
    fp.get_metadata().add_extra("kmeans_k", int(fp.n_clusters))
    fp.get_metadata().add_extra("kmeans_iterations", int(result.n_iter))
    fp.get_metadata().add_extra("kmeans_converged", bool(result.converged))
    fp.get_metadata().add_extra("kmeans_inertia", float(result.inertia))
    return fp


@step("score_clusters")
def score_clusters(fp: SegmentationFootprint) -> SegmentationFootprint:
    """Silhouette score, only defined for 2 <= populated clusters <= n - 1."""
    labels = np.asarray(fp.result.labels)
    n_labels = len(set(labels.tolist()))

    if 1 < n_labels < len(labels):
        sil = float(silhouette_score(fp.points, labels))
        fp.metrics["silhouette"] = sil
        fp.get_metadata().add_extra("silhouette", sil)
    return fp


@step("label_customers")
def label_customers(fp: SegmentationFootprint) -> SegmentationFootprint:
    out = fp.customers.copy()
    out[CLUSTER_COL] = np.asarray(fp.result.labels, dtype=int)
    fp.assignments = out
    return fp


def build_segmentation_trail(cfg: DashboardConfig) -> Trail[SegmentationFootprint]:
    return (
        Trail[SegmentationFootprint](name="segmentation")
        .then(build_points, fit_kmeans, score_clusters, label_customers)
        .with_tag("stage", "segmentation")
        .trace(cfg.trace_trails)
    )


def run_segmentation(
    clean_df: pd.DataFrame,
    n_clusters: int,
    cfg: Optional[DashboardConfig] = None,
) -> Segmentation:
    """
    Cluster customers on (age, total spending).

    Raises InvalidParameter for a cluster count < 1 and InsufficientData when
    there are fewer distinct points than clusters.
    """
    cfg = cfg or DashboardConfig()
    n_clusters = check_cluster_count(n_clusters)

    customers = aggregate_customers(clean_df, cfg)
    n_distinct = _distinct_points(customers, cfg)
    if n_clusters > n_distinct:
        raise InsufficientData(
            f"Invalid cluster count: {n_clusters} clusters requested, "
            f"only {n_distinct} distinct customer points"
        )

    fp = SegmentationFootprint(config=cfg, clean_df=clean_df, n_clusters=n_clusters, customers=customers)
    fp = build_segmentation_trail(cfg).run(fp)
    assert fp.result is not None and fp.assignments is not None

    log.info(
        "Segmentation: %d customers into %d clusters (%d iterations, converged=%s)",
        len(customers),
        n_clusters,
        fp.result.n_iter,
        fp.result.converged,
    )
    return Segmentation(
        assignments=fp.assignments,
        result=fp.result,
        silhouette=fp.metrics.get("silhouette"),
    )


def summarize_clusters(segmentation: Segmentation, cfg: Optional[DashboardConfig] = None) -> pd.DataFrame:
    """Per-cluster customer count and mean age / spending."""
    cfg = cfg or DashboardConfig()
    df = segmentation.assignments
    out = (
        df.groupby(CLUSTER_COL)
        .agg(
            customers=(cfg.col_customer_id, "size"),
            mean_age=(cfg.col_age, "mean"),
            mean_spending=(SPENDING_COL, "mean"),
        )
        .reindex(range(segmentation.result.k), fill_value=0)
        .reset_index()
    )
    return out

# src/retail_dashboard/utilities/plotting.py
from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd


def _no_data(title: str, out_path: Path) -> None:
    fig = plt.figure()
    plt.title(title)
    plt.text(0.5, 0.5, "No data", ha="center", va="center")
    fig.savefig(out_path, bbox_inches="tight", dpi=150)
    plt.close(fig)


def plot_barh_summary(
    summary: pd.DataFrame,
    *,
    label_col: str,
    value_col: str = "total",
    title: str,
    out_path: Path,
) -> None:
    """
    Save a horizontal bar plot for a grouped summary (one bar per label).
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)

    if summary is None or summary.empty:
        _no_data(title, out_path)
        return

    labels = summary[label_col].astype(str).tolist()
    values = summary[value_col].tolist()

    fig = plt.figure(figsize=(10, max(3, 0.4 * len(labels))))
    plt.barh(labels, values)
    plt.gca().invert_yaxis()
    plt.title(title)
    plt.xlabel(value_col.replace("_", " ").capitalize())
    plt.ylabel(label_col.replace("_", " ").capitalize())
    fig.savefig(out_path, bbox_inches="tight", dpi=150)
    plt.close(fig)


def plot_spending_histogram(distribution: pd.DataFrame, *, title: str, out_path: Path) -> None:
    """Bar chart of a binned spending distribution (bin_left, bin_right, count)."""
    out_path.parent.mkdir(parents=True, exist_ok=True)

    if distribution is None or distribution.empty:
        _no_data(title, out_path)
        return

    widths = (distribution["bin_right"] - distribution["bin_left"]).tolist()
    fig = plt.figure(figsize=(10, 4))
    plt.bar(distribution["bin_left"].tolist(), distribution["count"].tolist(), width=widths, align="edge")
    plt.title(title)
    plt.xlabel("Total spending")
    plt.ylabel("Transactions")
    fig.savefig(out_path, bbox_inches="tight", dpi=150)
    plt.close(fig)


def plot_clusters(assignments: pd.DataFrame, *, age_col: str, title: str, out_path: Path) -> None:
    """Scatter of customers in (age, total_spending), one colour per cluster."""
    out_path.parent.mkdir(parents=True, exist_ok=True)

    if assignments is None or assignments.empty:
        _no_data(title, out_path)
        return

    fig = plt.figure(figsize=(8, 6))
    for cluster, grp in assignments.groupby("cluster"):
        plt.scatter(grp[age_col], grp["total_spending"], label=f"Cluster {cluster}")
    plt.title(title)
    plt.xlabel("Age")
    plt.ylabel("Total spending")
    plt.legend()
    plt.tight_layout()
    fig.savefig(out_path, dpi=150)
    plt.close(fig)

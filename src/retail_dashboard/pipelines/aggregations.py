# src/retail_dashboard/pipelines/aggregations.py
from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from retail_dashboard.domain.config import DashboardConfig


def grouped_summary(df: pd.DataFrame, key_col: str, value_col: str, *, by_key: bool = False) -> pd.DataFrame:
    """
    Grouped count and sum of `value_col` per value of `key_col`.

    Returns a DataFrame with columns: [key_col, "transactions", "total"],
    sorted by total desc then key asc (or by key asc with by_key=True).
    """
    out = (
        df.groupby(key_col, dropna=False)[value_col]
        .agg(transactions="size", total="sum")
        .reset_index()
    )
    out["transactions"] = out["transactions"].astype("int64")
    out["total"] = out["total"].astype(float)

    if by_key:
        return out.sort_values(key_col).reset_index(drop=True)
    return out.sort_values(["total", key_col], ascending=[False, True]).reset_index(drop=True)


def by_payment_type(clean_df: pd.DataFrame, cfg: Optional[DashboardConfig] = None) -> pd.DataFrame:
    cfg = cfg or DashboardConfig()
    return grouped_summary(clean_df, cfg.col_payment_type, cfg.col_total)


def by_age(clean_df: pd.DataFrame, cfg: Optional[DashboardConfig] = None) -> pd.DataFrame:
    cfg = cfg or DashboardConfig()
    return grouped_summary(clean_df, cfg.col_age, cfg.col_total, by_key=True)


def by_city(clean_df: pd.DataFrame, cfg: Optional[DashboardConfig] = None) -> pd.DataFrame:
    cfg = cfg or DashboardConfig()
    return grouped_summary(clean_df, cfg.col_city, cfg.col_total)


def spending_distribution(clean_df: pd.DataFrame, cfg: Optional[DashboardConfig] = None) -> pd.DataFrame:
    """
    Histogram of the per-row total: equal-width bins over [min, max], the last
    bin closed on the right (numpy.histogram semantics).
    """
    cfg = cfg or DashboardConfig()
    values = clean_df[cfg.col_total].to_numpy(dtype=float)

    if len(values) == 0:
        return pd.DataFrame(columns=["bin_left", "bin_right", "count"])

    counts, edges = np.histogram(values, bins=cfg.spending_bins)
    return pd.DataFrame(
        {
            "bin_left": edges[:-1],
            "bin_right": edges[1:],
            "count": counts.astype("int64"),
        }
    )

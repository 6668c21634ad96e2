from __future__ import annotations

from dataclasses import asdict
from typing import Optional

import numpy as np
import pandas as pd

from traccia import Trail, step

from retail_dashboard.domain.config import DashboardConfig
from retail_dashboard.domain.errors import SchemaMismatch
from retail_dashboard.domain.footprint import CleaningFootprint
from retail_dashboard.pipelines.association_rules import split_items
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _normalize_text(s: pd.Series) -> pd.Series:
    """Strip text cells; blank strings become missing."""
    if s.dtype.kind in "biufc":
        return s
    out = s.map(lambda v: v.strip() if isinstance(v, str) else v)
    return out.replace({"": pd.NA})


def _coerce_numeric(s: pd.Series, *, integral: bool) -> pd.Series:
    """
    Coerce to float; unparsable values become NaN. With integral=True
    non-integer values (e.g. age 31.5) are treated as missing too.
    """
    out = pd.to_numeric(s, errors="coerce").astype(float)
    if integral:
        out = out.where(np.isclose(out, np.round(out)) | out.isna())
    return out


def validate_schema(df: pd.DataFrame, cfg: DashboardConfig) -> None:
    """Raise SchemaMismatch when required columns are missing or names repeat."""
    cols = [str(c) for c in df.columns]
    dup = sorted({c for c in cols if cols.count(c) > 1})
    if dup:
        raise SchemaMismatch(f"Duplicate column names: {dup}")

    missing = [c for c in cfg.required_columns if c not in cols]
    if missing:
        raise SchemaMismatch(
            "Dataset is missing required columns: "
            f"{missing}. Available columns: {cols[:50]}"
        )


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------
@step("log_config")
def log_config(fp: CleaningFootprint) -> CleaningFootprint:
    """Store a config snapshot in metadata for reproducibility."""
    fp.get_metadata().add_extra("config", asdict(fp.config))
    fp.get_metadata().add_extra("rows_loaded", int(len(fp.raw_df)))
    return fp


@step("normalize_values")
def normalize_values(fp: CleaningFootprint) -> CleaningFootprint:
    """
    Canonicalize cell values so that structural equality is meaningful:
      - text cells stripped, blank -> missing
      - an items cell with no item label (e.g. ",") -> missing
      - age / total coerced to numbers (unparsable -> missing)
    """
    cfg = fp.config
    df = fp.raw_df.copy()

    for col in df.columns:
        df[col] = _normalize_text(df[col])

    df[cfg.col_age] = _coerce_numeric(df[cfg.col_age], integral=True)
    df[cfg.col_total] = _coerce_numeric(df[cfg.col_total], integral=False)

    items = df[cfg.col_items]
    no_items = items.map(lambda v: isinstance(v, str) and not split_items(v, cfg.item_delimiter)).astype(bool)
    df[cfg.col_items] = items.mask(no_items)

    fp.clean_df = df
    return fp


@step("drop_duplicates")
def drop_duplicates(fp: CleaningFootprint) -> CleaningFootprint:
    """Keep the first occurrence of every distinct full row."""
    df = fp.clean_df

    before = len(df)
    df = df.loc[~df.duplicated(keep="first")]

    fp.clean_df = df
    fp.get_metadata().add_extra("rows_dropped_duplicates", int(before - len(df)))
    return fp


@step("drop_incomplete")
def drop_incomplete(fp: CleaningFootprint) -> CleaningFootprint:
    """Drop every row with a missing value in any field."""
    df = fp.clean_df

    before = len(df)
    df = df.dropna(axis=0, how="any")

    fp.clean_df = df
    fp.get_metadata().add_extra("rows_dropped_incomplete", int(before - len(df)))
    return fp


@step("finalize_cleaning")
def finalize_cleaning(fp: CleaningFootprint) -> CleaningFootprint:
    """
    Final normalization:
      - 0-based index without gaps (source order preserved)
      - age as integer, total as float, key categoricals as string
    """
    cfg = fp.config
    df = fp.clean_df.reset_index(drop=True)

    df[cfg.col_age] = df[cfg.col_age].astype("int64")
    df[cfg.col_total] = df[cfg.col_total].astype(float)
    for col in [cfg.col_customer_id, cfg.col_city, cfg.col_payment_type, cfg.col_items]:
        df[col] = df[col].astype(str)

    fp.clean_df = df
    fp.get_metadata().add_extra("rows_final_clean", int(len(df)))
    return fp


def build_cleaning_trail(cfg: DashboardConfig) -> Trail[CleaningFootprint]:
    return (
        Trail[CleaningFootprint](name="cleaning")
        .then(
            log_config,
            normalize_values,
            drop_duplicates,
            drop_incomplete,
            finalize_cleaning,
        )
        .with_tag("stage", "cleaning")
        .trace(cfg.trace_trails)
    )


def run_cleaning(raw_df: pd.DataFrame, cfg: Optional[DashboardConfig] = None) -> pd.DataFrame:
    """
    Deduplicate and drop incomplete rows. Order-preserving over survivors,
    deterministic, and a fixed point: cleaning a cleaned table changes nothing.
    """
    cfg = cfg or DashboardConfig()
    validate_schema(raw_df, cfg)

    fp = CleaningFootprint(config=cfg, raw_df=raw_df)
    fp = build_cleaning_trail(cfg).run(fp)
    assert fp.clean_df is not None

    log.info("Cleaning: %d rows in, %d rows out", len(raw_df), len(fp.clean_df))
    return fp.clean_df

"""
Footprints

Shared state containers passed along the TRACCIA trails. One footprint per trail:
- CleaningFootprint: raw table -> cleaned table
- SegmentationFootprint: cleaned table -> customer points -> k-means labels
- BasketFootprint: cleaned table -> transactions -> basket matrix -> frequent itemsets
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from traccia import FootprintMetadata

from retail_dashboard.domain.config import DashboardConfig
from retail_dashboard.domain.models import KMeansResult, MiningResult


@dataclass(slots=True)
class CleaningFootprint:
    config: DashboardConfig
    raw_df: pd.DataFrame
    clean_df: Optional[pd.DataFrame] = None

    _meta: FootprintMetadata = field(default_factory=FootprintMetadata)

    def get_metadata(self) -> FootprintMetadata:
        # must always return the same instance
        return self._meta


@dataclass(slots=True)
class SegmentationFootprint:
    config: DashboardConfig
    clean_df: pd.DataFrame
    n_clusters: int

    customers: Optional[pd.DataFrame] = None  # customer_id, age, total_spending
    points: Optional[np.ndarray] = None
    result: Optional[KMeansResult] = None
    assignments: Optional[pd.DataFrame] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    _meta: FootprintMetadata = field(default_factory=FootprintMetadata)

    def get_metadata(self) -> FootprintMetadata:
        return self._meta


@dataclass(slots=True)
class BasketFootprint:
    config: DashboardConfig
    min_support: float

    transactions: Optional[List[Tuple[str, ...]]] = None
    basket: Optional[pd.DataFrame] = None  # transactions x items, boolean
    mined: Optional[MiningResult] = None

    _meta: FootprintMetadata = field(default_factory=FootprintMetadata)

    def get_metadata(self) -> FootprintMetadata:
        return self._meta

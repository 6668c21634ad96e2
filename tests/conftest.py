from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

from retail_dashboard.domain.config import DashboardConfig
from retail_dashboard.session import DashboardSession

# 8 raw rows: one exact duplicate (row 5 repeats row 1), one row without a
# city, one row without a total -> 5 clean rows, 4 distinct customers.
SAMPLE_CSV = b"""customer_id,age,city,payment_type,items,total
C1,20,Rome,card,"bread,milk",40
C2,21,Milan,cash,"bread,milk,eggs",60
C3,50,Rome,card,bread,500
C4,52,Turin,card,"milk,eggs",450
C1,20,Rome,card,"bread,milk",40
C5,35,,cash,"bread,eggs",100
C2,21,Milan,cash,eggs,50
C6,44,Milan,paypal,milk,
"""

HEADER_ONLY_CSV = b"customer_id,age,city,payment_type,items,total\n"


@pytest.fixture
def config() -> DashboardConfig:
    return DashboardConfig(verbose=False)


@pytest.fixture
def sample_csv() -> bytes:
    return SAMPLE_CSV


@pytest.fixture
def header_only_csv() -> bytes:
    return HEADER_ONLY_CSV


@pytest.fixture
def raw_df() -> pd.DataFrame:
    return pd.DataFrame(
        [
            ["C1", 20, "Rome", "card", "bread,milk", 40.0],
            ["C2", 21, "Milan", "cash", "bread,milk,eggs", 60.0],
            ["C1", 20, "Rome", "card", "bread,milk", 40.0],
            ["C3", None, "Rome", "card", "bread", 500.0],
            ["C4", 52, "Turin", "card", "  ", 450.0],
            ["C2", 21, "Milan", "cash", "eggs", 50.0],
        ],
        columns=["customer_id", "age", "city", "payment_type", "items", "total"],
    )


@pytest.fixture
def session(config: DashboardConfig) -> DashboardSession:
    return DashboardSession(config)


@pytest.fixture
def loaded_session(session: DashboardSession, sample_csv: bytes) -> DashboardSession:
    session.select_file(sample_csv)
    return session

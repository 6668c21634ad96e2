from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from retail_dashboard.domain.config import DashboardConfig, check_cluster_count, check_threshold
from retail_dashboard.domain.errors import InvalidParameter


def test_defaults_are_valid():
    cfg = DashboardConfig()
    cfg.validate()
    assert cfg.n_clusters == 3
    assert cfg.required_columns == ("customer_id", "age", "city", "payment_type", "items", "total")


def test_from_env_reads_prefixed_variables():
    cfg = DashboardConfig.from_env(
        environ={
            "RETAIL_DASHBOARD_N_CLUSTERS": "4",
            "RETAIL_DASHBOARD_MIN_SUPPORT": "0.05",
            "RETAIL_DASHBOARD_VERBOSE": "false",
            "RETAIL_DASHBOARD_COL_CITY": "town",
            "UNRELATED": "x",
        }
    )
    assert cfg.n_clusters == 4
    assert cfg.min_support == 0.05
    assert cfg.verbose is False
    assert cfg.col_city == "town"
    assert cfg.min_confidence == DashboardConfig.min_confidence


def test_env_file_wins_over_environment(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("RETAIL_DASHBOARD_N_CLUSTERS=5\nRETAIL_DASHBOARD_LOG_FILE_PATH=logs/run.log\n")

    cfg = DashboardConfig.from_env(env_file, environ={"RETAIL_DASHBOARD_N_CLUSTERS": "2"})
    assert cfg.n_clusters == 5
    assert cfg.log_file_path == Path("logs/run.log")


def test_overrides_win_over_env():
    cfg = DashboardConfig.from_env(environ={"RETAIL_DASHBOARD_N_CLUSTERS": "oops"}, n_clusters=2)
    assert cfg.n_clusters == 2


@pytest.mark.parametrize(
    "key,value",
    [("RETAIL_DASHBOARD_N_CLUSTERS", "three"), ("RETAIL_DASHBOARD_MIN_SUPPORT", "x"), ("RETAIL_DASHBOARD_VERBOSE", "yes")],
)
def test_unparsable_env_values(key, value):
    with pytest.raises(InvalidParameter):
        DashboardConfig.from_env(environ={key: value})


def test_missing_env_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        DashboardConfig.from_env(tmp_path / ".env", environ={})


def test_validate_rejects_out_of_range_defaults():
    with pytest.raises(InvalidParameter):
        DashboardConfig(min_support=0.0).validate()
    with pytest.raises(InvalidParameter):
        DashboardConfig(n_clusters=0).validate()
    with pytest.raises(InvalidParameter):
        DashboardConfig(spending_bins=0).validate()


def test_threshold_bounds():
    assert check_threshold("s", 1) == 1.0
    assert check_threshold("s", 0.0005) == 0.0005
    with pytest.raises(InvalidParameter):
        check_threshold("s", 0.0005, lower=0.001)
    with pytest.raises(InvalidParameter):
        check_threshold("s", "0.5")
    with pytest.raises(InvalidParameter):
        check_threshold("s", True)


def test_cluster_count_rejects_bool_and_float():
    assert check_cluster_count(2) == 2
    for bad in (True, 2.0, "2", -1):
        with pytest.raises(InvalidParameter):
            check_cluster_count(bad)


def test_numpy_numbers_are_accepted():
    k = check_cluster_count(np.int64(2))
    assert k == 2 and type(k) is int
    assert check_threshold("s", np.float32(0.5)) == pytest.approx(0.5)
    with pytest.raises(InvalidParameter):
        check_cluster_count(np.int64(0))

from __future__ import annotations

import numbers
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

from dotenv import dotenv_values

from retail_dashboard.domain.errors import InvalidParameter


# Bounds accepted at the configuration boundary (slider range)
THRESHOLD_MIN: float = 0.001
THRESHOLD_MAX: float = 1.0


@dataclass
class DashboardConfig:
    """
    Global configuration object for the dashboard backend.
    All schema names and hyperparameters are declared here.
    """

    # -------------------------
    # Dataset schema
    # -------------------------
    col_customer_id: str = "customer_id"
    col_age: str = "age"
    col_city: str = "city"
    col_payment_type: str = "payment_type"
    col_items: str = "items"
    col_total: str = "total"

    item_delimiter: str = ","

    # -------------------------
    # Clustering
    # -------------------------
    n_clusters: int = 3
    kmeans_max_iter: int = 100
    random_state: int = 42

    # -------------------------
    # Association rules
    # -------------------------
    min_support: float = 0.2
    min_confidence: float = 0.2
    min_rule_length: int = 2
    max_itemset_length: Optional[int] = None

    # -------------------------
    # Aggregation views
    # -------------------------
    spending_bins: int = 10

    # -------------------------
    # Runtime / logging
    # -------------------------
    trace_trails: bool = False
    verbose: bool = True
    log_to_file: bool = False
    log_file_path: Optional[Path] = None

    @property
    def required_columns(self) -> Tuple[str, ...]:
        return (
            self.col_customer_id,
            self.col_age,
            self.col_city,
            self.col_payment_type,
            self.col_items,
            self.col_total,
        )

    def validate(self) -> None:
        """Raise InvalidParameter if any default is out of its domain."""
        check_cluster_count(self.n_clusters)
        check_threshold("min_support", self.min_support, lower=THRESHOLD_MIN)
        check_threshold("min_confidence", self.min_confidence, lower=THRESHOLD_MIN)

        if self.min_rule_length < 2:
            raise InvalidParameter(f"min_rule_length must be >= 2, got {self.min_rule_length}")
        if self.max_itemset_length is not None and self.max_itemset_length < 1:
            raise InvalidParameter(f"max_itemset_length must be >= 1, got {self.max_itemset_length}")
        if self.kmeans_max_iter < 1:
            raise InvalidParameter(f"kmeans_max_iter must be >= 1, got {self.kmeans_max_iter}")
        if self.spending_bins < 1:
            raise InvalidParameter(f"spending_bins must be >= 1, got {self.spending_bins}")
        if not self.item_delimiter:
            raise InvalidParameter("item_delimiter must be a non-empty string")

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> DashboardConfig:
        """
        Build a config from RETAIL_DASHBOARD_* variables.

        Values in `env_file` (a .env file) take precedence over the process
        environment. Keyword overrides win over both.
        """
        env = dict(os.environ if environ is None else environ)
        if env_file is not None:
            path = Path(env_file)
            if not path.exists():
                raise FileNotFoundError(f"No .env found at {path}")
            env.update({k: v for k, v in dotenv_values(path).items() if v is not None})

        values = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or f.name in overrides:
                continue
            values[f.name] = _parse_env_value(f.name, raw)

        values.update(overrides)
        return cls(**values)


ENV_PREFIX = "RETAIL_DASHBOARD_"

_INT_FIELDS = {"n_clusters", "kmeans_max_iter", "random_state", "min_rule_length", "max_itemset_length", "spending_bins"}
_FLOAT_FIELDS = {"min_support", "min_confidence"}
_BOOL_FIELDS = {"trace_trails", "verbose", "log_to_file"}


def _parse_env_value(name: str, raw: str):
    raw = raw.strip()
    try:
        if name in _INT_FIELDS:
            return None if name == "max_itemset_length" and raw == "" else int(raw)
        if name in _FLOAT_FIELDS:
            return float(raw)
    except ValueError:
        raise InvalidParameter(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from None
    if name in _BOOL_FIELDS:
        if raw.lower() not in ("true", "false"):
            raise InvalidParameter(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r} (true/false)")
        return raw.lower() == "true"
    if name == "log_file_path":
        return Path(raw)
    return raw


def check_cluster_count(k: object) -> int:
    """Cluster count must be an integer >= 1 (bool is rejected)."""
    if isinstance(k, bool) or not isinstance(k, numbers.Integral):
        raise InvalidParameter(f"Invalid cluster count: expected an integer, got {k!r}")
    if k < 1:
        raise InvalidParameter(f"Invalid cluster count: {k} (must be >= 1)")
    return int(k)


def check_threshold(name: str, value: object, *, lower: float = 0.0) -> float:
    """
    Validate a support/confidence fraction.

    With the default lower bound the domain is (0, 1]; the configuration
    boundary passes lower=THRESHOLD_MIN to get [0.001, 1].
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameter(f"Invalid threshold {name}={value!r}: expected a number")

    v = float(value)
    if lower > 0.0:
        ok = lower <= v <= THRESHOLD_MAX
    else:
        ok = 0.0 < v <= THRESHOLD_MAX
    if not ok:
        bounds = f"[{lower}, {THRESHOLD_MAX}]" if lower > 0.0 else f"(0, {THRESHOLD_MAX}]"
        raise InvalidParameter(f"Invalid threshold {name}={v}: must be in {bounds}")
    return v

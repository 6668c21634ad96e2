from __future__ import annotations

from typing import List, Optional, Tuple

import pandas as pd
from mlxtend.preprocessing import TransactionEncoder

from traccia import Trail, step

from retail_dashboard.algorithms.apriori import frequent_itemsets, generate_rules
from retail_dashboard.domain.config import DashboardConfig, check_threshold
from retail_dashboard.domain.errors import InsufficientData, InvalidParameter
from retail_dashboard.domain.footprint import BasketFootprint
from retail_dashboard.domain.models import MiningResult, Rule
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def split_items(value: str, delimiter: str) -> Tuple[str, ...]:
    """Split a basket field into a sorted set of non-blank labels."""
    return tuple(sorted({part.strip() for part in str(value).split(delimiter) if part.strip()}))


def build_transactions(clean_df: pd.DataFrame, cfg: DashboardConfig) -> List[Tuple[str, ...]]:
    """One transaction per cleaned row, same ordinal index."""
    return [split_items(v, cfg.item_delimiter) for v in clean_df[cfg.col_items].tolist()]


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------
@step("encode_basket")
def encode_basket(fp: BasketFootprint) -> BasketFootprint:
    """One-hot encode transactions (rows) x items (columns) as booleans."""
    te = TransactionEncoder()
    matrix = te.fit(fp.transactions).transform(fp.transactions)
    basket = pd.DataFrame(matrix, columns=te.columns_).astype(bool)

    fp.basket = basket
    fp.get_metadata().add_extra("transactions_count", int(basket.shape[0]))
    fp.get_metadata().add_extra("unique_items", int(basket.shape[1]))
    return fp


@step("mine_itemsets")
def mine_itemsets(fp: BasketFootprint) -> BasketFootprint:
    cfg = fp.config
    mined = frequent_itemsets(
        fp.basket,
        fp.min_support,
        max_len=cfg.max_itemset_length,
    )

    fp.mined = mined
    fp.get_metadata().add_extra("frequent_itemsets_count", int(len(mined.itemsets)))
    fp.get_metadata().add_extra(
        "frequent_itemsets_max_len",
        max((len(i) for i in mined.itemsets), default=0),
    )
    return fp


def build_mining_trail(cfg: DashboardConfig) -> Trail[BasketFootprint]:
    return (
        Trail[BasketFootprint](name="basket_mining")
        .then(encode_basket, mine_itemsets)
        .with_tag("stage", "association_rules")
        .trace(cfg.trace_trails)
    )


def run_itemset_mining(
    clean_df: pd.DataFrame,
    min_support: float,
    cfg: Optional[DashboardConfig] = None,
) -> MiningResult:
    """
    Frequent itemsets of the cleaned table's baskets.

    Raises InvalidParameter for a support outside (0, 1] and InsufficientData
    for an empty transaction set.
    """
    cfg = cfg or DashboardConfig()
    min_support = check_threshold("min_support", min_support)

    transactions = build_transactions(clean_df, cfg)
    if not transactions:
        raise InsufficientData("Cannot mine association rules: the transaction set is empty")

    fp = BasketFootprint(config=cfg, min_support=min_support, transactions=transactions)
    fp = build_mining_trail(cfg).run(fp)
    assert fp.mined is not None

    log.info(
        "Itemset mining: %d transactions, %d frequent itemsets at support >= %.3f",
        fp.mined.n_transactions,
        len(fp.mined.itemsets),
        min_support,
    )
    return fp.mined


def run_rule_generation(
    mined: MiningResult,
    min_confidence: float,
    cfg: Optional[DashboardConfig] = None,
) -> Tuple[Rule, ...]:
    cfg = cfg or DashboardConfig()
    min_confidence = check_threshold("min_confidence", min_confidence)
    if cfg.min_rule_length < 2:
        raise InvalidParameter(f"min_rule_length must be >= 2, got {cfg.min_rule_length}")

    rules = generate_rules(mined, min_confidence, min_length=cfg.min_rule_length)
    log.info("Rule generation: %d rules at confidence >= %.3f", len(rules), min_confidence)
    return rules

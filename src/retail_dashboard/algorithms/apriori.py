"""
Apriori frequent-itemset mining and rule generation.

Transactions arrive one-hot encoded (rows = transactions, columns = items,
boolean). Itemsets are sorted tuples of item labels; the per-level support
counts live in a dict keyed by those tuples. Support of a candidate is the
number of rows where all its columns are True, computed column-wise with numpy.

Output order is deterministic: itemsets by (length, lexical items), rules by
(itemset order, antecedent length, lexical antecedent).
"""

from __future__ import annotations

from itertools import combinations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from retail_dashboard.domain.config import check_threshold
from retail_dashboard.domain.errors import InsufficientData, InvalidParameter
from retail_dashboard.domain.models import ItemKey, Itemset, MiningResult, Rule
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)

# Relative tolerance when comparing a support fraction to its threshold
_EPS = 1e-12


def _meets(count: int, n: int, threshold: float) -> bool:
    return count / n + _EPS >= threshold


def apriori_gen(frequent: Sequence[ItemKey]) -> List[ItemKey]:
    """
    Join frequent (L-1)-itemsets sharing their first L-2 items, then prune
    candidates with a non-frequent (L-1)-subset.

    `frequent` must be sorted; the output is sorted too.
    """
    prev = set(frequent)
    out: List[ItemKey] = []
    for i, a in enumerate(frequent):
        for b in frequent[i + 1 :]:
            if a[:-1] != b[:-1]:
                # sorted input: no later b shares the prefix either
                break
            cand = a + (b[-1],)
            if all(sub in prev for sub in combinations(cand, len(cand) - 1)):
                out.append(cand)
    return out


def _count(matrix: np.ndarray, col_of: Dict[str, int], candidates: Iterable[ItemKey]) -> Dict[ItemKey, int]:
    counts: Dict[ItemKey, int] = {}
    for cand in candidates:
        cols = [col_of[item] for item in cand]
        counts[cand] = int(matrix[:, cols].all(axis=1).sum())
    return counts


def frequent_itemsets(
    basket: pd.DataFrame,
    min_support: float,
    *,
    max_len: Optional[int] = None,
) -> MiningResult:
    """
    Mine all itemsets whose support is >= min_support.

    Raises InsufficientData for an empty basket and InvalidParameter for a
    threshold outside (0, 1].
    """
    min_support = check_threshold("min_support", min_support)
    if max_len is not None and max_len < 1:
        raise InvalidParameter(f"max_len must be >= 1, got {max_len}")

    n = int(basket.shape[0])
    if n == 0:
        raise InsufficientData("Cannot mine association rules: the transaction set is empty")

    labels = [str(c) for c in basket.columns]
    matrix = basket.to_numpy(dtype=bool)
    col_of = {item: j for j, item in enumerate(labels)}

    # Level 1
    item_counts = matrix.sum(axis=0)
    level: Dict[ItemKey, int] = {
        (item,): int(item_counts[j])
        for item, j in sorted(col_of.items())
        if _meets(int(item_counts[j]), n, min_support)
    }

    found: List[Itemset] = []
    size = 1
    while level:
        keys = sorted(level)
        found.extend(Itemset(items=key, count=level[key], support=level[key] / n) for key in keys)
        log.debug("apriori: %d frequent itemsets of size %d", len(keys), size)

        size += 1
        if max_len is not None and size > max_len:
            break

        candidates = apriori_gen(keys)
        if not candidates:
            break
        counts = _count(matrix, col_of, candidates)
        level = {key: cnt for key, cnt in counts.items() if _meets(cnt, n, min_support)}

    return MiningResult(n_transactions=n, min_support=min_support, itemsets=tuple(found))


def generate_rules(
    mined: MiningResult,
    min_confidence: float,
    *,
    min_length: int = 2,
) -> Tuple[Rule, ...]:
    """
    Split every frequent itemset of size >= min_length into all non-trivial
    (antecedent, consequent) pairs and keep those meeting min_confidence.

    Every subset of a frequent itemset is frequent, so antecedent and
    consequent supports are always available from the same run.
    """
    min_confidence = check_threshold("min_confidence", min_confidence)
    if min_length < 2:
        raise InvalidParameter(f"min_length must be >= 2, got {min_length}")

    n = mined.n_transactions
    count_of: Dict[ItemKey, int] = {i.items: i.count for i in mined.itemsets}

    rules: List[Rule] = []
    for its in mined.itemsets:
        if len(its.items) < min_length:
            continue
        for r in range(1, len(its.items)):
            for antecedent in combinations(its.items, r):
                consequent = tuple(x for x in its.items if x not in antecedent)
                ante_count = count_of[antecedent]
                cons_count = count_of[consequent]

                confidence = its.count / ante_count
                if confidence + _EPS < min_confidence:
                    continue

                cons_support = cons_count / n
                rules.append(
                    Rule(
                        antecedent=antecedent,
                        consequent=consequent,
                        antecedent_support=ante_count / n,
                        consequent_support=cons_support,
                        support=its.support,
                        confidence=confidence,
                        lift=confidence / cons_support,
                    )
                )

    log.debug("apriori: %d rules kept at confidence >= %.3f", len(rules), min_confidence)
    return tuple(rules)

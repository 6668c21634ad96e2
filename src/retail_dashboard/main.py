from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from retail_dashboard.domain.config import DashboardConfig
from retail_dashboard.domain.errors import DashboardError
from retail_dashboard.session import DashboardSession
from retail_dashboard.utilities.log import setup_logging
from retail_dashboard.utilities.plotting import (
    plot_barh_summary,
    plot_clusters,
    plot_spending_histogram,
)


def _flag(value: str) -> bool:
    return value.lower() == "true"


def export_session(session: DashboardSession, output_dir: Path, *, plots: bool) -> List[Path]:
    """
    Read every node of the session and write its materialized value.
    Returns the paths written.
    """
    cfg = session.config
    output_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    def save_csv(df, name: str) -> None:
        path = output_dir / name
        df.to_csv(path, index=False)
        written.append(path)

    save_csv(session.cleaned_table(), "cleaned.csv")
    save_csv(session.cluster_assignments(), "clusters.csv")
    save_csv(session.cluster_centroids(), "centroids.csv")

    itemsets = session.frequent_itemsets()
    itemsets["itemsets"] = itemsets["itemsets"].map(lambda s: ", ".join(sorted(s)))
    save_csv(itemsets, "itemsets.csv")

    rules = session.association_rules()
    for col in ("antecedents", "consequents"):
        rules[col] = rules[col].map(lambda s: ", ".join(sorted(s)))
    save_csv(rules, "rules.csv")

    if plots:
        charts_dir = output_dir / "charts"
        views = [
            (session.payment_summary(), cfg.col_payment_type, "Spending by payment type", "by_payment_type.png"),
            (session.age_summary(), cfg.col_age, "Spending by age", "by_age.png"),
            (session.city_summary(), cfg.col_city, "Spending by city", "by_city.png"),
        ]
        for summary, label_col, title, name in views:
            path = charts_dir / name
            plot_barh_summary(summary, label_col=label_col, title=title, out_path=path)
            written.append(path)

        path = charts_dir / "spending_distribution.png"
        plot_spending_histogram(session.spending_distribution(), title="Spending distribution", out_path=path)
        written.append(path)

        path = charts_dir / "clusters.png"
        plot_clusters(
            session.cluster_assignments(),
            age_col=cfg.col_age,
            title=f"Customer segments (k={session.segmentation().result.k})",
            out_path=path,
        )
        written.append(path)

    return written


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Retail dashboard - batch runner")
    p.add_argument("csv", type=Path, help="Transaction-level CSV with a header row")
    p.add_argument("--clusters", type=int, default=None, help="Number of clusters (default: from config)")
    p.add_argument("--min-support", type=float, default=None, help="Minimum support (default: from config)")
    p.add_argument("--min-confidence", type=float, default=None, help="Minimum confidence (default: from config)")
    p.add_argument("--output-dir", type=Path, default=Path("outputs"), help="Output directory (default: outputs)")
    p.add_argument("--env_file", type=Path, default=None, help="Optional .env with RETAIL_DASHBOARD_* settings")
    p.add_argument(
        "--plots",
        type=str,
        default="true",
        choices=["true", "false"],
        help="If true, also save chart PNGs (default: true)",
    )
    p.add_argument(
        "--verbose",
        type=str,
        default="true",
        choices=["true", "false"],
        help="If true, log to console (default: true)",
    )
    p.add_argument(
        "--log_file",
        type=str,
        default="false",
        choices=["true", "false"],
        help="If true, also log to output_dir/retail_dashboard.log (default: false)",
    )
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = DashboardConfig.from_env(
            args.env_file,
            verbose=_flag(args.verbose),
            log_to_file=_flag(args.log_file),
            log_file_path=args.output_dir / "retail_dashboard.log",
        )
    except (FileNotFoundError, DashboardError) as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 2

    logger = setup_logging(
        verbose=cfg.verbose,
        log_to_file=cfg.log_to_file,
        log_file_path=cfg.log_file_path,
    )

    clusters = cfg.n_clusters if args.clusters is None else args.clusters
    min_support = cfg.min_support if args.min_support is None else args.min_support
    min_confidence = cfg.min_confidence if args.min_confidence is None else args.min_confidence

    logger.info("Starting retail dashboard run")
    logger.info(f"csv={args.csv}")
    logger.info(f"output_dir={args.output_dir}")
    logger.info(f"clusters={clusters} min_support={min_support} min_confidence={min_confidence}")

    if not args.csv.exists():
        logger.error("Dataset not found: %s", args.csv)
        print(f"Dataset not found: {args.csv}", file=sys.stderr)
        return 2

    try:
        session = DashboardSession(cfg, name="cli")
        session.select_file(args.csv)
        session.set_cluster_count(clusters)
        session.set_min_support(min_support)
        session.set_min_confidence(min_confidence)

        written = export_session(session, args.output_dir, plots=_flag(args.plots))
    except DashboardError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1

    logger.info("Run completed: %d files written to %s", len(written), args.output_dir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import pandas as pd

from retail_dashboard.main import main


def _write(tmp_path, data: bytes):
    path = tmp_path / "sales.csv"
    path.write_bytes(data)
    return path


def test_batch_run_writes_outputs(tmp_path, sample_csv):
    csv = _write(tmp_path, sample_csv)
    out = tmp_path / "out"

    rc = main([str(csv), "--clusters", "2", "--min-support", "0.4", "--min-confidence", "0.5",
               "--output-dir", str(out), "--verbose", "false"])

    assert rc == 0
    for name in ("cleaned.csv", "clusters.csv", "centroids.csv", "itemsets.csv", "rules.csv"):
        assert (out / name).exists()
    for name in ("by_payment_type.png", "by_age.png", "by_city.png", "spending_distribution.png", "clusters.png"):
        assert (out / "charts" / name).exists()

    assert len(pd.read_csv(out / "cleaned.csv")) == 5
    assert len(pd.read_csv(out / "rules.csv")) == 4


def test_without_plots(tmp_path, sample_csv):
    csv = _write(tmp_path, sample_csv)
    out = tmp_path / "out"

    rc = main([str(csv), "--output-dir", str(out), "--plots", "false", "--verbose", "false"])

    assert rc == 0
    assert not (out / "charts").exists()


def test_invalid_cluster_count_exits_with_error(tmp_path, sample_csv, capsys):
    csv = _write(tmp_path, sample_csv)

    rc = main([str(csv), "--clusters", "0", "--output-dir", str(tmp_path / "out"), "--verbose", "false"])

    assert rc == 1
    assert "InvalidParameter" in capsys.readouterr().err


def test_missing_file(tmp_path):
    rc = main([str(tmp_path / "nope.csv"), "--output-dir", str(tmp_path / "out"), "--verbose", "false"])
    assert rc == 2


def test_settings_from_env_file(tmp_path, sample_csv):
    csv = _write(tmp_path, sample_csv)
    env_file = tmp_path / ".env"
    env_file.write_text("RETAIL_DASHBOARD_N_CLUSTERS=2\nRETAIL_DASHBOARD_MIN_SUPPORT=0.4\n"
                        "RETAIL_DASHBOARD_MIN_CONFIDENCE=0.5\n")
    out = tmp_path / "out"

    rc = main([str(csv), "--env_file", str(env_file), "--output-dir", str(out), "--plots", "false",
               "--verbose", "false"])

    assert rc == 0
    assert len(pd.read_csv(out / "centroids.csv")) == 2
    assert len(pd.read_csv(out / "rules.csv")) == 4


def test_missing_env_file(tmp_path, sample_csv):
    csv = _write(tmp_path, sample_csv)
    rc = main([str(csv), "--env_file", str(tmp_path / "missing.env"), "--verbose", "false"])
    assert rc == 2

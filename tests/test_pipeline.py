import os

import pytest

from maternal_health.classification import maternal_risk_analysis as analysis
from maternal_health.classification.maternal_risk_analysis import EntryPoint


@pytest.fixture
def ep(tmp_path):
    return EntryPoint(
        fig_dir=str(tmp_path / "figures"),
        n_trees=10,
        rf_grid={"mtry": [1, 3, 5], "min_n": [2, 4, 6, 8]},
        penalty_grid={"penalty": [0.001, 0.01, 0.1]},
    )


def test_end_to_end_selects_one_configuration(ep, csv_path):
    results = ep.main(str(csv_path))

    assert sorted(results["base_model"]) == ["multinomial_regression", "random_forest"]
    assert results["holdout_auc"].between(0, 1).all()
    assert results["holdout_accuracy"].between(0, 1).all()

    rf = ep.models["random_forest"]
    assert len(rf.cv_results) == 12
    assert rf.best_params["mtry"] in (1, 3, 5)
    assert rf.best_params["min_n"] in (2, 4, 6, 8)
    best_rows = rf.cv_results[
        (rf.cv_results["mtry"] == rf.best_params["mtry"])
        & (rf.cv_results["min_n"] == rf.best_params["min_n"])
    ]
    assert len(best_rows) == 1


def test_end_to_end_writes_figures(ep, csv_path):
    ep.main(str(csv_path))
    files = set(os.listdir(ep.fig_dir))
    assert {"correlation.png", "boxplots.png"} <= files
    for family in ("random_forest", "multinomial_regression"):
        for suffix in ("tuning", "confusion", "importance", "roc"):
            assert f"{family}_{suffix}.png" in files


def test_end_to_end_prints_reports(ep, csv_path, capsys):
    ep.main(str(csv_path))
    out = capsys.readouterr().out
    assert "Class balance:" in out
    assert "[random_forest] AUC (CV best):" in out
    assert "[multinomial_regression] coefficients by class:" in out
    assert "Models by held-out ROC-AUC:" in out


def test_end_to_end_is_reproducible(tmp_path, csv_path):
    kwargs = dict(
        n_trees=10,
        rf_grid={"mtry": [1, 3], "min_n": [2, 8]},
        penalty_grid={"penalty": [0.01, 0.1]},
    )
    first = EntryPoint(fig_dir=str(tmp_path / "a"), **kwargs).main(str(csv_path))
    second = EntryPoint(fig_dir=str(tmp_path / "b"), **kwargs).main(str(csv_path))
    assert first["best_params"].tolist() == second["best_params"].tolist()
    assert first["holdout_auc"].tolist() == second["holdout_auc"].tolist()


def test_default_data_path_does_not_depend_on_cwd():
    assert os.path.isabs(analysis.DATA_PATH)
    assert analysis.DATA_PATH.endswith(os.path.join("data", "maternal_health_risk.csv"))


def test_main_reads_default_data_path(ep, csv_path, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(analysis, "DATA_PATH", str(csv_path))
    results = ep.main()
    assert len(results) == 2


def test_main_reports_missing_default_file(ep, tmp_path, monkeypatch):
    missing = str(tmp_path / "absent" / "maternal_health_risk.csv")
    monkeypatch.setattr(analysis, "DATA_PATH", missing)
    with pytest.raises(IOError, match="absent"):
        ep.main()

import re
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from .dataclasses import ModelFamily, ModelResult
from .errors import TuningError
from .transformers import CORRELATION_THRESHOLD, MultinomialRegression, build_recipe

RANDOM_STATE = 123
N_TREES = 500

PREDICTORS = [
    "age",
    "systolic_bp",
    "diastolic_bp",
    "blood_sugar",
    "body_temp",
    "heart_rate",
]
TARGET = "risk_level"
RISK_LEVELS = ["low risk", "mid risk", "high risk"]

# В исходном наборе сахар крови называется просто "BS".
COLUMN_ALIASES = {"bs": "blood_sugar"}

RF_GRID = {"mtry": [1, 3, 5], "min_n": [2, 4, 6, 8]}
PENALTY_GRID = {"penalty": np.logspace(-4, -1, 30).tolist()}

SCORING = {"roc_auc": "roc_auc_ovo", "accuracy": "accuracy"}


def to_snake_case(name) -> str:
    """Приводит имя столбца к виду lower_snake_case (SystolicBP -> systolic_bp)."""
    name = re.sub(r"[^0-9a-zA-Z]+", "_", str(name).strip())
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    return re.sub(r"_+", "_", name).strip("_").lower()


def normalize_columns(columns) -> List[str]:
    names = [to_snake_case(c) for c in columns]
    return [COLUMN_ALIASES.get(n, n) for n in names]


def risk_order(label: str) -> int:
    return RISK_LEVELS.index(label) if label in RISK_LEVELS else len(RISK_LEVELS)


def multinomial_coefficients(pipeline: Pipeline) -> pd.DataFrame:
    """Коэффициенты обученной мультиномиальной модели по классам."""
    model = pipeline.named_steps["model"]
    features = pipeline[:-1].get_feature_names_out()
    table = pd.DataFrame(model.coef_, index=model.classes_, columns=features)
    table.insert(0, "intercept", model.intercept_)
    table.index.name = TARGET
    return table.loc[sorted(table.index, key=risk_order)]


def build_model_families(
    n_trees: int = N_TREES,
    rf_grid: Optional[Dict[str, List]] = None,
    penalty_grid: Optional[Dict[str, List]] = None,
    threshold: float = CORRELATION_THRESHOLD,
    random_state: int = RANDOM_STATE,
) -> Dict[str, ModelFamily]:
    """Создает семейства моделей с общим рецептом и сетками гиперпараметров."""
    return {
        "random_forest": ModelFamily(
            name="random_forest",
            pipeline=Pipeline(
                [
                    ("recipe", build_recipe(threshold)),
                    ("scaler", "passthrough"),
                    (
                        "model",
                        RandomForestClassifier(
                            n_estimators=n_trees, random_state=random_state
                        ),
                    ),
                ]
            ).set_output(transform="pandas"),
            grid=dict(RF_GRID if rf_grid is None else rf_grid),
            param_paths={
                "mtry": "model__max_features",
                "min_n": "model__min_samples_split",
            },
            simplicity=[("mtry", True), ("min_n", False)],
        ),
        "multinomial_regression": ModelFamily(
            name="multinomial_regression",
            pipeline=Pipeline(
                [
                    ("recipe", build_recipe(threshold)),
                    ("scaler", StandardScaler()),
                    ("model", MultinomialRegression(random_state=random_state)),
                ]
            ).set_output(transform="pandas"),
            grid=dict(PENALTY_GRID if penalty_grid is None else penalty_grid),
            param_paths={"penalty": "model__penalty", "mixture": "model__mixture"},
            simplicity=[("penalty", False)],
            coefficients=multinomial_coefficients,
        ),
    }


def expand_grid(family: ModelFamily) -> Dict[str, List]:
    """Переводит сетку в имена параметров пайплайна для GridSearchCV."""
    if not family.grid:
        raise TuningError(f"Hyperparameter grid for {family.name} is empty")
    param_grid = {}
    for name, values in family.grid.items():
        if name not in family.param_paths:
            raise TuningError(f"{family.name} has no tunable hyperparameter {name!r}")
        if len(values) == 0:
            raise TuningError(f"No candidate values for {family.name}.{name}")
        param_grid[family.param_paths[name]] = list(values)
    return param_grid


def cv_results_to_frame(cv_results: Dict, family: ModelFamily) -> pd.DataFrame:
    """Сводит cv_results_ в таблицу: параметр(ы), средние и разброс метрик."""
    names = {path: name for name, path in family.param_paths.items()}
    rows = []
    for i, params in enumerate(cv_results["params"]):
        row = {names[path]: value for path, value in params.items()}
        for metric in SCORING:
            row[f"mean_{metric}"] = cv_results[f"mean_test_{metric}"][i]
            row[f"std_{metric}"] = cv_results[f"std_test_{metric}"][i]
        row["rank_roc_auc"] = cv_results["rank_test_roc_auc"][i]
        rows.append(row)
    return pd.DataFrame(rows)


def select_best(
    cv_results: pd.DataFrame,
    family: ModelFamily,
    metric: str = "roc_auc",
    atol: float = 1e-12,
) -> int:
    """Возвращает позицию лучшей точки сетки.

    Точки, отстающие от максимума не больше чем на ``atol``, считаются
    равными; из них выбирается самая простая модель семейства.
    """
    scores = cv_results[f"mean_{metric}"].astype(float)
    if scores.isna().all():
        raise TuningError(f"No grid point of {family.name} produced a valid {metric}")
    tied = cv_results[scores >= scores.max() - atol]
    keys = [(name, asc) for name, asc in family.simplicity if name in tied.columns]
    if keys:
        tied = tied.sort_values(
            by=[name for name, _ in keys],
            ascending=[asc for _, asc in keys],
            kind="mergesort",
        )
    return int(tied.index[0])


def results_to_frame(results: List[ModelResult]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "base_model": r.base_model,
                "cv_mean_auc": r.cv_mean_auc,
                "holdout_auc": r.holdout_auc,
                "holdout_accuracy": r.holdout_accuracy,
                "train_time_sec": r.train_time_sec,
                "best_params": r.best_params,
            }
            for r in results
        ]
    )

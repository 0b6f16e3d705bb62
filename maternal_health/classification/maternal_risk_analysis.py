from __future__ import annotations

import os

from .errors import SchemaError, TuningError
from .utils import (
    N_TREES,
    PREDICTORS,
    RANDOM_STATE,
    RISK_LEVELS,
    SCORING,
    TARGET,
    build_model_families,
    cv_results_to_frame,
    expand_grid,
    normalize_columns,
    results_to_frame,
    select_best,
)

FIG_DIR = "figures"
# Ensure matplotlib cache is writable in sandboxed environments.
os.environ.setdefault("MPLCONFIGDIR", os.path.join(FIG_DIR, ".matplotlib"))
os.makedirs(os.environ["MPLCONFIGDIR"], exist_ok=True)

import time
from .dataclasses import (
    DataSplit,
    EvaluationReport,
    FinalizedModel,
    ModelFamily,
    ModelResult,
)
from typing import Dict, List, Optional, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from pandas.api.types import is_numeric_dtype
from sklearn.base import clone
from sklearn.inspection import permutation_importance
from sklearn.metrics import accuracy_score, confusion_matrix, roc_auc_score, roc_curve
from sklearn.model_selection import GridSearchCV, StratifiedKFold, train_test_split


# Файл кладётся в data/ в корне репозитория, см. data/README.md.
DATA_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "data",
    "maternal_health_risk.csv",
)
TRAIN_FRACTION = 0.75
N_FOLDS = 5


class DatasetLoaderMixin:
    """Класс-миксин для загрузки и проверки набора данных о здоровье матерей."""

    def load_maternal_df(self, path: Optional[str] = None) -> pd.DataFrame:
        path = DATA_PATH if path is None else path
        try:
            df = pd.read_csv(path)
        except (
            OSError,
            UnicodeDecodeError,
            pd.errors.ParserError,
            pd.errors.EmptyDataError,
        ) as exc:
            raise IOError(
                f"Cannot read maternal health data from {path}: {exc}"
            ) from exc

        df.columns = normalize_columns(df.columns)
        duplicated = df.columns[df.columns.duplicated()].tolist()
        if duplicated:
            raise SchemaError(f"Duplicate columns after normalization: {duplicated}")
        missing = [c for c in PREDICTORS + [TARGET] if c not in df.columns]
        if missing:
            raise SchemaError(f"Missing expected columns: {missing}")
        non_numeric = [c for c in PREDICTORS if not is_numeric_dtype(df[c])]
        if non_numeric:
            raise SchemaError(f"Predictor columns are not numeric: {non_numeric}")

        df[TARGET] = df[TARGET].astype(str).str.strip().str.lower()
        unknown = sorted(set(df[TARGET]) - set(RISK_LEVELS))
        if unknown:
            raise SchemaError(f"Unexpected {TARGET} values: {unknown}")
        return df


class EDARunnerMixin:
    """Класс для разведочного анализа (EDA): корреляции, баланс классов, сводка."""

    fig_dir = FIG_DIR

    def class_balance(self, df: pd.DataFrame) -> pd.DataFrame:
        counts = df[TARGET].value_counts().reindex(RISK_LEVELS, fill_value=0)
        return pd.DataFrame({"n": counts, "proportion": counts / counts.sum()})

    def run_eda(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Выполняет EDA, печатает таблицы и сохраняет графики в fig_dir."""
        os.makedirs(self.fig_dir, exist_ok=True)
        sns.set_theme(style="whitegrid", context="notebook")

        corr = df[PREDICTORS].corr()
        corr_path = os.path.join(self.fig_dir, "correlation.png")
        plt.figure(figsize=(7, 6))
        sns.heatmap(corr, annot=True, cmap="crest", fmt=".2f", vmin=-1, vmax=1)
        plt.title("Correlation of Maternal Vitals")
        plt.tight_layout()
        plt.savefig(corr_path, dpi=200, bbox_inches="tight")
        plt.close()

        box_path = os.path.join(self.fig_dir, "boxplots.png")
        fig, axes = plt.subplots(2, 3, figsize=(13, 7))
        for ax, col in zip(axes.flat, PREDICTORS):
            sns.boxplot(data=df, x=TARGET, y=col, order=RISK_LEVELS, ax=ax)
            ax.set_xlabel("")
            ax.set_ylabel(col)
        fig.suptitle("Vitals by Risk Level")
        plt.tight_layout()
        plt.savefig(box_path, dpi=200, bbox_inches="tight")
        plt.close(fig)

        balance = self.class_balance(df)
        print("\nClass balance:")
        print(balance)
        print("\nMean (sd) of vitals by risk level:")
        summary = df.groupby(TARGET)[PREDICTORS].agg(["mean", "std"]).round(2)
        print(summary.reindex([lvl for lvl in RISK_LEVELS if lvl in summary.index]))

        print("EDA visuals saved to:", corr_path, box_path, sep="\n- ")
        return corr, balance


class SplitterMixin:
    """Стратифицированное разбиение на обучающую и тестовую выборки."""

    random_state = RANDOM_STATE

    def split_dataset(
        self,
        df: pd.DataFrame,
        train_fraction: float = TRAIN_FRACTION,
        strata: str = TARGET,
    ) -> DataSplit:
        if not 0 < train_fraction < 1:
            raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")
        train, test = train_test_split(
            df,
            train_size=train_fraction,
            stratify=df[strata],
            random_state=self.random_state,
        )
        return DataSplit(
            train=train,
            test=test,
            train_fraction=train_fraction,
            random_state=self.random_state,
        )


class Trainer:
    """Подбор гиперпараметров кросс-валидацией и финальное обучение модели."""

    random_state = RANDOM_STATE
    n_folds = N_FOLDS

    def tune_family(self, family: ModelFamily, train: pd.DataFrame) -> FinalizedModel:
        param_grid = expand_grid(family)
        cv = StratifiedKFold(
            n_splits=self.n_folds, shuffle=True, random_state=self.random_state
        )
        search = GridSearchCV(
            clone(family.pipeline),
            param_grid=param_grid,
            scoring=SCORING,
            refit=False,
            cv=cv,
            error_score=np.nan,
            n_jobs=None,
        )
        X, y = train[PREDICTORS], train[TARGET]

        start = time.perf_counter()
        try:
            search.fit(X, y)
        except ValueError as exc:
            raise TuningError(f"Grid search for {family.name} failed: {exc}") from exc
        cv_results = cv_results_to_frame(search.cv_results_, family)
        best = select_best(cv_results, family, metric="roc_auc")

        params = search.cv_results_["params"][best]
        pipeline = clone(family.pipeline).set_params(**params)
        pipeline.fit(X, y)
        train_time = time.perf_counter() - start

        return FinalizedModel(
            family=family.name,
            best_params={
                name: params[path]
                for name, path in family.param_paths.items()
                if path in params
            },
            cv_mean_auc=float(cv_results.loc[best, "mean_roc_auc"]),
            pipeline=pipeline,
            cv_results=cv_results,
            train_time_sec=train_time,
            coefficients=family.coefficients,
        )


class Evaluator:
    """Однократная оценка финальной модели на отложенной выборке."""

    random_state = RANDOM_STATE

    def evaluate_model(
        self, model: FinalizedModel, test: pd.DataFrame
    ) -> EvaluationReport:
        X, y = test[PREDICTORS], test[TARGET]
        pipeline = model.pipeline

        predictions = pd.Series(
            pipeline.predict(X), index=test.index, name="prediction"
        )
        probabilities = pd.DataFrame(
            pipeline.predict_proba(X), index=test.index, columns=pipeline.classes_
        )
        confusion = pd.DataFrame(
            confusion_matrix(y, predictions, labels=RISK_LEVELS),
            index=pd.Index(RISK_LEVELS, name="truth"),
            columns=pd.Index(RISK_LEVELS, name="prediction"),
        )
        roc_auc = roc_auc_score(
            y, probabilities.to_numpy(), multi_class="ovo", labels=pipeline.classes_
        )

        perm = permutation_importance(
            pipeline,
            X,
            y,
            scoring="accuracy",
            n_repeats=10,
            random_state=self.random_state,
        )
        importance = (
            pd.DataFrame(
                {
                    "feature": PREDICTORS,
                    "importance": perm.importances_mean,
                    "std": perm.importances_std,
                }
            )
            .sort_values("importance", ascending=False, kind="mergesort")
            .reset_index(drop=True)
        )

        return EvaluationReport(
            family=model.family,
            confusion=confusion,
            accuracy=float(accuracy_score(y, predictions)),
            roc_auc=float(roc_auc),
            importance=importance,
            predictions=predictions,
            probabilities=probabilities,
            coefficients=model.coefficients(pipeline) if model.coefficients else None,
        )


class ReportRendererMixin:
    """Графики и таблицы по результатам подбора и оценки моделей."""

    fig_dir = FIG_DIR

    def _save(self, name: str) -> str:
        os.makedirs(self.fig_dir, exist_ok=True)
        path = os.path.join(self.fig_dir, name)
        plt.tight_layout()
        plt.savefig(path, dpi=200, bbox_inches="tight")
        plt.close()
        return path

    def plot_tuning_curve(self, model: FinalizedModel) -> str:
        params = list(model.best_params)
        cv = model.cv_results
        plt.figure(figsize=(7, 4.5))
        sns.lineplot(
            data=cv,
            x=params[0],
            y="mean_roc_auc",
            hue=params[1] if len(params) > 1 else None,
            marker="o",
            palette="viridis" if len(params) > 1 else None,
        )
        if params[0] == "penalty":
            plt.xscale("log")
        plt.ylabel("Mean ROC-AUC (CV)")
        plt.title(f"{model.family}: tuning results")
        return self._save(f"{model.family}_tuning.png")

    def plot_confusion_matrix(self, report: EvaluationReport) -> str:
        plt.figure(figsize=(5, 4))
        sns.heatmap(report.confusion, annot=True, fmt="d", cmap="Blues", cbar=False)
        plt.title(f"{report.family}: confusion matrix (test)")
        return self._save(f"{report.family}_confusion.png")

    def plot_importance(self, report: EvaluationReport) -> str:
        plt.figure(figsize=(6, 4))
        sns.barplot(
            data=report.importance, x="importance", y="feature", color="#4C72B0"
        )
        plt.xlabel("Permutation importance (accuracy drop)")
        plt.ylabel("")
        plt.title(f"{report.family}: variable importance")
        return self._save(f"{report.family}_importance.png")

    def plot_roc_curves(self, report: EvaluationReport, y_true: pd.Series) -> str:
        plt.figure(figsize=(5.5, 5))
        for level in RISK_LEVELS:
            if level not in report.probabilities.columns:
                continue
            fpr, tpr, _ = roc_curve(y_true == level, report.probabilities[level])
            plt.plot(fpr, tpr, label=level)
        plt.plot([0, 1], [0, 1], linestyle="--", color="grey")
        plt.xlabel("False positive rate")
        plt.ylabel("True positive rate")
        plt.legend(title=TARGET)
        plt.title(f"{report.family}: one-vs-rest ROC (test)")
        return self._save(f"{report.family}_roc.png")

    def render_evaluation(
        self, report: EvaluationReport, test: pd.DataFrame
    ) -> List[str]:
        paths = [
            self.plot_confusion_matrix(report),
            self.plot_importance(report),
            self.plot_roc_curves(report, test[TARGET]),
        ]
        print(f"\n[{report.family}] metrics on the test set:")
        print(
            pd.DataFrame(
                {
                    "metric": ["roc_auc", "accuracy"],
                    "estimate": [report.roc_auc, report.accuracy],
                }
            ).to_string(index=False)
        )
        print(f"\n[{report.family}] variable importance:")
        print(report.importance.to_string(index=False))
        if report.coefficients is not None:
            print(f"\n[{report.family}] coefficients by class:")
            print(report.coefficients.round(4))
        return paths


class EntryPoint(
    DatasetLoaderMixin,
    EDARunnerMixin,
    SplitterMixin,
    Trainer,
    Evaluator,
    ReportRendererMixin,
):
    """Класс-энтрипоинт: сравнение случайного леса и мультиномиальной регрессии."""

    def __init__(
        self,
        fig_dir: str = FIG_DIR,
        random_state: int = RANDOM_STATE,
        n_folds: int = N_FOLDS,
        n_trees: int = N_TREES,
        rf_grid: Optional[Dict[str, List]] = None,
        penalty_grid: Optional[Dict[str, List]] = None,
    ):
        self.fig_dir = fig_dir
        self.random_state = random_state
        self.n_folds = n_folds
        self.n_trees = n_trees
        self.rf_grid = rf_grid
        self.penalty_grid = penalty_grid
        self.models: Dict[str, FinalizedModel] = {}
        self.reports: Dict[str, EvaluationReport] = {}

    def main(self, csv_path: Optional[str] = None) -> pd.DataFrame:
        df = self.load_maternal_df(csv_path)
        self.run_eda(df)
        split = self.split_dataset(df)
        print(f"\nTrain: {len(split.train)} rows | Test: {len(split.test)} rows")

        families = build_model_families(
            n_trees=self.n_trees,
            rf_grid=self.rf_grid,
            penalty_grid=self.penalty_grid,
            random_state=self.random_state,
        )
        results: List[ModelResult] = []
        for name, family in families.items():
            model = self.tune_family(family, split.train)
            tuning_path = self.plot_tuning_curve(model)
            report = self.evaluate_model(model, split.test)
            paths = self.render_evaluation(report, split.test)
            self.models[name] = model
            self.reports[name] = report

            results.append(
                ModelResult(
                    base_model=name,
                    best_params=model.best_params,
                    cv_mean_auc=model.cv_mean_auc,
                    holdout_auc=report.roc_auc,
                    holdout_accuracy=report.accuracy,
                    train_time_sec=model.train_time_sec,
                )
            )
            print(
                f"[{name}] AUC (CV best): {model.cv_mean_auc:.4f} | "
                f"AUC (test): {report.roc_auc:.4f} | "
                f"train_time: {model.train_time_sec:.3f}s"
            )
            print("Figures saved to:", tuning_path, *paths, sep="\n- ")

        df_results = results_to_frame(results).sort_values(
            by="holdout_auc", ascending=False
        )
        print("\nModels by held-out ROC-AUC:")
        print(
            df_results[
                [
                    "base_model",
                    "cv_mean_auc",
                    "holdout_auc",
                    "holdout_accuracy",
                    "train_time_sec",
                ]
            ]
        )
        return df_results


def main():
    ep = EntryPoint()
    ep.main()


if __name__ == "__main__":
    main()

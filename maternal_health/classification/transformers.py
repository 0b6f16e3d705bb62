from typing import List

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, ClassifierMixin, TransformerMixin
from sklearn.feature_selection import VarianceThreshold
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline
from sklearn.utils.validation import check_is_fitted

CORRELATION_THRESHOLD = 0.9


def find_correlated_columns(corr: np.ndarray, threshold: float) -> List[int]:
    """Возвращает индексы столбцов, которые нужно удалить, чтобы ни одна пара
    оставшихся не коррелировала сильнее порога.

    Столбцы просматриваются по убыванию их максимальной абсолютной корреляции.
    Из каждой пары выше порога удаляется тот, у кого больше средняя
    абсолютная корреляция с остальными оставшимися столбцами.
    """
    corr = np.abs(np.nan_to_num(np.asarray(corr, dtype=float)))
    n_cols = corr.shape[0]
    if n_cols < 2:
        return []
    off_diag = corr.copy()
    np.fill_diagonal(off_diag, np.nan)
    order = np.argsort(-np.nanmax(off_diag, axis=0), kind="stable")

    alive = np.ones(n_cols, dtype=bool)
    for pos, i in enumerate(order[:-1]):
        if not alive[i]:
            continue
        for j in order[pos + 1 :]:
            if not (alive[i] and alive[j]) or corr[i, j] <= threshold:
                continue
            mean_i = np.nanmean(off_diag[i, alive])
            mean_j = np.nanmean(off_diag[j, alive])
            if mean_i > mean_j:
                alive[i] = False
            else:
                alive[j] = False
    return sorted(np.flatnonzero(~alive).tolist())


class CorrelationFilter(TransformerMixin, BaseEstimator):
    """Удаляет столбцы, попарно коррелирующие сильнее ``threshold``."""

    def __init__(self, threshold: float = CORRELATION_THRESHOLD, method: str = "pearson"):
        self.threshold = threshold
        self.method = method

    def fit(self, X, y=None):
        frame = X if isinstance(X, pd.DataFrame) else pd.DataFrame(np.asarray(X))
        if isinstance(X, pd.DataFrame):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        self.n_features_in_ = frame.shape[1]
        corr = frame.corr(method=self.method).to_numpy()
        dropped = find_correlated_columns(corr, self.threshold)
        self.support_ = np.ones(self.n_features_in_, dtype=bool)
        self.support_[dropped] = False
        return self

    def transform(self, X):
        check_is_fitted(self, "support_")
        if X.shape[1] != self.n_features_in_:
            raise ValueError(
                f"X has {X.shape[1]} features, but CorrelationFilter is expecting "
                f"{self.n_features_in_} features as input."
            )
        if isinstance(X, pd.DataFrame):
            return X.loc[:, X.columns[self.support_]]
        return np.asarray(X)[:, self.support_]

    def get_feature_names_out(self, input_features=None):
        check_is_fitted(self, "support_")
        if input_features is None:
            input_features = getattr(self, "feature_names_in_", None)
        if input_features is None:
            input_features = [f"x{i}" for i in range(self.n_features_in_)]
        return np.asarray(input_features, dtype=object)[self.support_]


def build_recipe(threshold: float = CORRELATION_THRESHOLD) -> Pipeline:
    """Создает общий для всех моделей рецепт предобработки (ещё не обученный)."""
    return Pipeline(
        [
            ("zero_variance", VarianceThreshold(threshold=0.0)),
            ("correlation", CorrelationFilter(threshold=threshold)),
        ]
    )


class MultinomialRegression(ClassifierMixin, BaseEstimator):
    """Мультиномиальная регрессия с регуляризацией elastic net.

    ``penalty`` задаёт силу регуляризации (lambda), ``mixture``: долю L1.
    Внутри используется ``LogisticRegression`` с ``C = 1 / (n * penalty)``.
    """

    def __init__(
        self,
        penalty: float = 1e-3,
        mixture: float = 1.0,
        max_iter: int = 5000,
        random_state=None,
    ):
        self.penalty = penalty
        self.mixture = mixture
        self.max_iter = max_iter
        self.random_state = random_state

    def fit(self, X, y):
        if self.penalty <= 0:
            raise ValueError(f"penalty must be positive, got {self.penalty}")
        n_samples = len(y)
        self.model_ = LogisticRegression(
            C=1.0 / (n_samples * self.penalty),
            l1_ratio=self.mixture,
            solver="saga",
            max_iter=self.max_iter,
            random_state=self.random_state,
        )
        self.model_.fit(X, y)
        self.classes_ = self.model_.classes_
        self.coef_ = self.model_.coef_
        self.intercept_ = self.model_.intercept_
        self.n_features_in_ = self.model_.n_features_in_
        return self

    def decision_function(self, X):
        check_is_fitted(self, "model_")
        return self.model_.decision_function(X)

    def predict_proba(self, X):
        check_is_fitted(self, "model_")
        return self.model_.predict_proba(X)

    def predict(self, X):
        check_is_fitted(self, "model_")
        return self.model_.predict(X)

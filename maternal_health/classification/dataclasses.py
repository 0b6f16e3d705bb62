from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd
from sklearn.pipeline import Pipeline


@dataclass(frozen=True)
class DataSplit:
    train: pd.DataFrame
    test: pd.DataFrame
    train_fraction: float
    random_state: int


@dataclass
class ModelFamily:
    name: str
    pipeline: Pipeline
    grid: Dict[str, List]
    param_paths: Dict[str, str]
    # (параметр, по возрастанию): чем раньше в сортировке, тем проще модель
    simplicity: List[Tuple[str, bool]] = field(default_factory=list)
    coefficients: Optional[Callable[[Pipeline], pd.DataFrame]] = None


@dataclass(frozen=True)
class FinalizedModel:
    family: str
    best_params: Dict
    cv_mean_auc: float
    pipeline: Pipeline
    cv_results: pd.DataFrame
    train_time_sec: float
    coefficients: Optional[Callable[[Pipeline], pd.DataFrame]] = None


@dataclass(frozen=True)
class EvaluationReport:
    family: str
    confusion: pd.DataFrame
    accuracy: float
    roc_auc: float
    importance: pd.DataFrame
    predictions: pd.Series
    probabilities: pd.DataFrame
    coefficients: Optional[pd.DataFrame] = None


@dataclass
class ModelResult:
    base_model: str
    best_params: Dict
    cv_mean_auc: float
    holdout_auc: float
    holdout_accuracy: float
    train_time_sec: float

class SchemaError(ValueError):
    """Во входных данных нет ожидаемых столбцов или у них неверный тип."""


class TuningError(RuntimeError):
    """Сетка гиперпараметров пуста или перебор не дал ни одной валидной метрики."""

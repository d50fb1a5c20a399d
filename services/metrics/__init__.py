from services.metrics.decay import DecayTable, decay_factor
from services.metrics.facts import FactSet
from services.metrics.metric_engine import MetricEngine, MetricSnapshot, MetricStrategy

__all__ = [
    "DecayTable",
    "decay_factor",
    "FactSet",
    "MetricEngine",
    "MetricSnapshot",
    "MetricStrategy",
]

from .metric_delta import get_metric_value, histogram_observes, metric_delta

__all__ = ["get_metric_value", "histogram_observes", "metric_delta"]

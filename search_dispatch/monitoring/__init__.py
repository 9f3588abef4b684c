from search_dispatch.monitoring.metrics_collector import PrometheusEventObserver

__all__ = ["PrometheusEventObserver"]

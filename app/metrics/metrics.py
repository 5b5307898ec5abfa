from prometheus_client import Counter, Histogram


# =====================================
# METRICS COLLECTOR
# =====================================

class MetricsCollector:
    """Prometheus metrics collector for the plugin submission service"""

    def __init__(self):
        # Counter metrics
        self.submissions_total = Counter(
            'plugin_submissions_total',
            'Total plugin submissions by outcome',
            ['outcome']
        )

        self.index_conflicts_total = Counter(
            'plugin_index_conflicts_total',
            'Conflicting index writes that were retried'
        )

        self.rollbacks_total = Counter(
            'plugin_submission_rollbacks_total',
            'Files deleted to undo a failed submission',
            ['status']
        )

        # Histogram metrics
        self.github_request_duration = Histogram(
            'github_request_duration_seconds',
            'GitHub contents API request duration',
            ['method', 'status']
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'Inbound HTTP request duration',
            ['method', 'path']
        )

    def record_submission(self, outcome: str):
        """Record a finished submission (success, invalid, duplicate, upstream_error, ...)"""
        self.submissions_total.labels(outcome=outcome).inc()

    def record_index_conflict(self):
        self.index_conflicts_total.inc()

    def record_rollback(self, status: str):
        self.rollbacks_total.labels(status=status).inc()

    def observe_github_request(self, method: str, status_code: int, duration: float):
        self.github_request_duration.labels(method=method, status=str(status_code)).observe(duration)

    def observe_request(self, method: str, path: str, duration: float):
        self.request_duration.labels(method=method, path=path).observe(duration)


# Global metrics instance
_metrics_collector = MetricsCollector()

def get_metrics() -> MetricsCollector:
    """Dependency to get metrics collector"""
    return _metrics_collector

"""
Run metrics shared by every module
"""

import threading

from aws_lambda_powertools import Metrics

from pantheon_mass_update import METRICS_NAMESPACE, SERVICE_NAME


class ThreadSafeMetrics(Metrics):
    """
    Metrics whose writes are serialized across worker threads

    Every Metrics instance shares one metric set, and add_metric flushes it
    in place once a metric reaches 100 values.
    """

    _lock = threading.RLock()

    def add_metric(self, *args, **kwargs):
        with self._lock:
            super().add_metric(*args, **kwargs)

    def flush_metrics(self, *args, **kwargs):
        with self._lock:
            super().flush_metrics(*args, **kwargs)


metrics = ThreadSafeMetrics(namespace=METRICS_NAMESPACE, service=SERVICE_NAME)

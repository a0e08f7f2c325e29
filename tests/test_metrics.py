"""
Tests for the shared metrics object used from worker threads.
"""

import threading
from unittest.mock import patch

import pytest
from aws_lambda_powertools import Metrics
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update.metrics import ThreadSafeMetrics, metrics
from pantheon_mass_update.models.batch_outcome import SiteStatus
from pantheon_mass_update.services.mass_updater import MassUpdater
from pantheon_mass_update.services.post_action_runner import PostActionRunner
from pantheon_mass_update.services.update_applier import UpdateApplier
from pantheon_mass_update.services.update_discovery import UpdateDiscovery


@pytest.fixture(autouse=True)
def clear_metrics():
    metrics.clear_metrics()
    yield
    metrics.clear_metrics()


@pytest.mark.unit
def test_add_metric_holds_the_shared_lock():
    acquired_elsewhere = []

    def add_metric(self, *args, **kwargs):
        def try_lock():
            got_it = ThreadSafeMetrics._lock.acquire(blocking=False)
            if got_it:
                ThreadSafeMetrics._lock.release()
            acquired_elsewhere.append(got_it)

        other = threading.Thread(target=try_lock)
        other.start()
        other.join()

    with patch.object(Metrics, "add_metric", add_metric):
        metrics.add_metric(name="SitesApplied", unit=MetricUnit.Count, value=1)

    assert acquired_elsewhere == [False]


@pytest.mark.unit
def test_parallel_run_survives_metric_auto_flush(fake_client, fake_runner, options):
    # Enough sites that per-site metrics pass the 100-value flush threshold mid-run
    for index in range(150):
        fake_client.add_site(f"site-{index:03d}")
    records = UpdateDiscovery(fake_client).discover(list(fake_client.sites.values()))
    updater = MassUpdater(UpdateApplier(fake_client, sleep=lambda _: None), PostActionRunner(fake_runner))

    outcome = updater.run(records, options(parallelism=8))

    assert outcome.succeeded == 150
    assert all(result.status is SiteStatus.SUCCEEDED for result in outcome.results)

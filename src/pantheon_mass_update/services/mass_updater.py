"""
Failure-isolated batch runner for applying upstream updates
"""

import itertools
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional

from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.exceptions import ApplyError
from pantheon_mass_update.metrics import metrics
from pantheon_mass_update.models.batch_outcome import BatchOutcome, SiteResult, SiteStatus
from pantheon_mass_update.models.run_options import RunOptions
from pantheon_mass_update.models.site import SiteUpdateRecord
from pantheon_mass_update.services.batch_reporter import BatchReporter
from pantheon_mass_update.services.post_action_runner import PostActionRunner
from pantheon_mass_update.services.update_applier import ApplyOutcome, UpdateApplier

logger = Logger(service=SERVICE_NAME, child=True)


class MassUpdater:
    """
    Runs every discovered site through apply and post-actions, one outcome each
    """

    def __init__(self, applier: UpdateApplier, post_action_runner: PostActionRunner,
                 correlation_id: Optional[str] = None):
        """
        Args:
            applier: Per-site apply state machine
            post_action_runner: Maintenance commands for applied sites
            correlation_id: Run identifier attached to log lines
        """
        self.applier = applier
        self.post_action_runner = post_action_runner
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.reporter: Optional[BatchReporter] = None
        self._progress_lock = threading.Lock()
        self._progress_counter = itertools.count(1)

    def run(self, records: Dict[str, SiteUpdateRecord], options: RunOptions) -> BatchOutcome:
        """
        Process all records and collect their outcomes

        Args:
            records: Discovered sites, in processing order
            options: Run options

        Returns:
            BatchOutcome: Totals for the run; always complete
        """
        self.reporter = BatchReporter(total=len(records))
        self._progress_counter = itertools.count(1)
        start_time = time.time()

        logger.info("Starting mass update", extra={
            "correlation_id": self.correlation_id,
            "sites": len(records),
            "parallelism": options.parallelism,
            "dry_run": options.dry_run,
        })

        if options.parallelism == 1 or len(records) <= 1:
            for record in records.values():
                self.reporter.record(self._process_site_safely(record, options))
        else:
            with ThreadPoolExecutor(max_workers=options.parallelism,
                                    thread_name_prefix="mass-update") as executor:
                futures = [
                    executor.submit(self._process_site_safely, record, options)
                    for record in records.values()
                ]
                # Results are recorded in discovery order
                for future in futures:
                    self.reporter.record(future.result())

        duration = time.time() - start_time
        logger.info("Mass update completed", extra={
            "correlation_id": self.correlation_id,
            "duration_seconds": round(duration, 2),
            **self.reporter.outcome.to_dict(),
        })
        metrics.add_metric(name="MassUpdateDuration", unit=MetricUnit.Seconds, value=duration)
        return self.reporter.outcome

    def process_site(self, record: SiteUpdateRecord, options: RunOptions) -> SiteResult:
        """Apply updates to one site and run post-actions when it was applied"""
        site = record.site
        with self._progress_lock:
            self.reporter.progress(next(self._progress_counter), site.name)

        result = self.applier.apply(record, options)

        if result.outcome is ApplyOutcome.SKIPPED:
            status = SiteStatus.SKIPPED
        elif result.outcome is ApplyOutcome.APPLY_FAILED:
            status = SiteStatus.FAILED
        else:
            status = SiteStatus.SUCCEEDED

        site_result = SiteResult(
            site_id=site.id,
            site_name=site.name,
            status=status,
            update_count=record.update_count,
            error=result.error,
        )
        if result.outcome is ApplyOutcome.APPLIED and options.has_post_actions:
            site_result.post_action_errors = self.post_action_runner.run(site, options)
        return site_result

    def _process_site_safely(self, record: SiteUpdateRecord, options: RunOptions) -> SiteResult:
        # Nothing that goes wrong for one site may reach the batch loop
        try:
            return self.process_site(record, options)
        except Exception as e:
            logger.error(f"Unexpected error processing {record.site.name}: {e}", extra={
                "correlation_id": self.correlation_id,
                "site": record.site.name,
                "error_type": "UnexpectedError",
            }, exc_info=True)
            return SiteResult(
                site_id=record.site.id,
                site_name=record.site.name,
                status=SiteStatus.FAILED,
                update_count=record.update_count,
                error=ApplyError(record.site.name, str(e)),
            )

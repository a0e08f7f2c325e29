"""
Progress lines, run summary and the fatal-exit condition
"""

from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.exceptions import BatchFailedError
from pantheon_mass_update.metrics import metrics
from pantheon_mass_update.models.batch_outcome import BatchOutcome, SiteResult, SiteStatus

logger = Logger(service=SERVICE_NAME, child=True)


class BatchReporter:
    """
    Accumulates one outcome per site and reports the run
    """

    def __init__(self, total: int):
        self.outcome = BatchOutcome(total=total)

    def progress(self, index: int, site_name: str) -> None:
        logger.info(f"[{index}/{self.outcome.total}] Processing {site_name}...", extra={
            "site": site_name,
            "current": index,
            "total": self.outcome.total,
        })

    def record(self, result: SiteResult) -> None:
        self.outcome.record(result)

    def summary(self) -> dict:
        """Log the summary block and return the counters"""
        outcome = self.outcome
        if outcome.total == 0:
            logger.info("No sites need updates.")

        logger.info("===============================")
        logger.info("  MASS UPDATE SUMMARY")
        logger.info("===============================")
        logger.info(f"Total sites with updates: {outcome.total}")
        logger.info(f"Succeeded:    {outcome.succeeded}")
        logger.info(f"Failed:       {outcome.failed}")
        logger.info(f"Skipped:      {outcome.skipped}", extra=outcome.to_dict())
        for result in outcome.results:
            if result.status is SiteStatus.FAILED:
                logger.error(f"  {result.site_name}: {result.reason}", extra={"site": result.site_name})

        metrics.add_metric(name="SitesSucceeded", unit=MetricUnit.Count, value=outcome.succeeded)
        metrics.add_metric(name="SitesSkipped", unit=MetricUnit.Count, value=outcome.skipped)
        metrics.add_metric(name="BatchFailures", unit=MetricUnit.Count, value=outcome.failed)

        return outcome.to_dict()

    def raise_for_failures(self) -> None:
        """
        Raises:
            BatchFailedError: If any site failed
        """
        if self.outcome.failed > 0:
            raise BatchFailedError(self.outcome.failed)

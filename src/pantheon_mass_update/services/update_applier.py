"""
Per-site state machine that applies upstream updates and waits for the workflow
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.exceptions import ApplyError, ApplyTimeoutError, EligibilityError, SiteError
from pantheon_mass_update.metrics import metrics
from pantheon_mass_update.models.run_options import RunOptions
from pantheon_mass_update.models.site import DEFAULT_ENV, SiteUpdateRecord
from pantheon_mass_update.models.workflow import Workflow

logger = Logger(service=SERVICE_NAME, child=True)


class ApplyOutcome(Enum):
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"
    APPLIED = "applied"
    APPLY_FAILED = "apply_failed"


@dataclass(frozen=True)
class ApplyResult:
    outcome: ApplyOutcome
    error: Optional[SiteError] = None
    workflow: Optional[Workflow] = None


class UpdateApplier:
    """
    Frozen check -> connection mode check -> dry run or apply -> poll
    """

    def __init__(self, pantheon_client, env_id: str = DEFAULT_ENV,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.pantheon_client = pantheon_client
        self.env_id = env_id
        self._sleep = sleep
        self._clock = clock

    def apply(self, record: SiteUpdateRecord, options: RunOptions) -> ApplyResult:
        """
        Drive one site to a terminal outcome

        Never raises for per-site problems; they come back inside the result.
        """
        site = record.site

        if options.skip_frozen and self._is_frozen(record):
            error = EligibilityError(site.name, f"Skipping {site.name} - site is frozen.")
            logger.warning(str(error), extra={"site": site.name})
            return ApplyResult(ApplyOutcome.SKIPPED, error)

        try:
            environment = self.pantheon_client.get_environment(site.id, self.env_id)
        except Exception as e:
            return self._failed(record, ApplyError(site.name, f"Could not read {self.env_id} environment: {e}"))

        if not environment.is_git_mode:
            error = EligibilityError(
                site.name, f"Skipping {site.name} - {self.env_id} environment is not in git mode."
            )
            logger.warning(str(error), extra={"site": site.name, "connection_mode": environment.connection_mode})
            return ApplyResult(ApplyOutcome.SKIPPED, error)

        logname = "DRY RUN" if options.dry_run else "notice"
        logger.info(f"{logname}: Applying {record.update_count} updates to {site.name}", extra={
            "site": site.name,
            "updates": record.update_count,
            "dry_run": options.dry_run,
        })
        if options.dry_run:
            return ApplyResult(ApplyOutcome.DRY_RUN)

        try:
            workflow = self.pantheon_client.apply_upstream_updates(
                site.id, self.env_id, options.updatedb, options.accept_upstream
            )
            workflow = self.wait_for_workflow(record, workflow, options)
        except ApplyError as e:
            return self._failed(record, e)
        except Exception as e:
            return self._failed(record, ApplyError(site.name, str(e)))

        logger.info(f"Upstream updates applied to {site.name}.", extra={
            "site": site.name,
            "workflow_id": workflow.id,
        })
        metrics.add_metric(name="SitesApplied", unit=MetricUnit.Count, value=1)
        return ApplyResult(ApplyOutcome.APPLIED, workflow=workflow)

    def wait_for_workflow(self, record: SiteUpdateRecord, workflow: Workflow, options: RunOptions) -> Workflow:
        """
        Poll a workflow until it finishes

        Without a workflow_timeout this blocks until the remote side reports a
        terminal state.

        Raises:
            ApplyTimeoutError: If the deadline passes first
            ApplyError: If the workflow finishes unsuccessfully
        """
        site_name = record.site.name
        start = self._clock()
        deadline = start + options.workflow_timeout if options.workflow_timeout else None
        attempts = 1

        workflow = self.pantheon_client.get_workflow(workflow.site_id, workflow.id)
        while not workflow.is_finished:
            if deadline is not None and self._clock() >= deadline:
                raise ApplyTimeoutError(
                    site_name,
                    f"Workflow {workflow.id} did not finish within {options.workflow_timeout:g}s "
                    f"(last state: {workflow.state.value})"
                )
            self._sleep(options.poll_interval)
            workflow = self.pantheon_client.get_workflow(workflow.site_id, workflow.id)
            attempts += 1

        duration = self._clock() - start
        logger.debug("Workflow finished", extra={
            "site": site_name,
            "workflow_id": workflow.id,
            "result": workflow.result,
            "poll_attempts": attempts,
            "duration_seconds": round(duration, 2),
        })
        metrics.add_metric(name="WorkflowDuration", unit=MetricUnit.Seconds, value=duration)

        if not workflow.is_successful:
            raise ApplyError(site_name, f"Workflow {workflow.id} finished with result '{workflow.result}'")
        return workflow

    def _is_frozen(self, record: SiteUpdateRecord) -> bool:
        try:
            return self.pantheon_client.get_site_frozen(record.site.id)
        except Exception as e:
            # Fail open: a site whose frozen flag can't be read is still attempted
            logger.debug(f"Could not check frozen state for {record.site.name}: {e}")
            return False

    @staticmethod
    def _failed(record: SiteUpdateRecord, error: ApplyError) -> ApplyResult:
        logger.error(f"Failed to update {record.site.name}: {error.message}", extra={
            "site": record.site.name,
            "site_id": record.site.id,
            "error_type": type(error).__name__,
        })
        metrics.add_metric(name="SitesFailed", unit=MetricUnit.Count, value=1)
        return ApplyResult(ApplyOutcome.APPLY_FAILED, error)

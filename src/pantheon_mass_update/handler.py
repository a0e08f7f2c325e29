"""
Run-level entry point for a Pantheon mass update
"""

import time
import uuid
from typing import Any, Dict, Optional

from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.clients.command_runner import CommandRunner
from pantheon_mass_update.clients.pantheon_client import PantheonClientInterface
from pantheon_mass_update.exceptions import BatchFailedError, ConfigurationError, FilterEmptyError
from pantheon_mass_update.metrics import metrics
from pantheon_mass_update.models.run_options import RunOptions
from pantheon_mass_update.services.mass_updater import MassUpdater
from pantheon_mass_update.services.post_action_runner import PostActionRunner
from pantheon_mass_update.services.site_source import SiteIdSource, SiteSource
from pantheon_mass_update.services.update_applier import UpdateApplier
from pantheon_mass_update.services.update_discovery import UpdateDiscovery

# Initialize structured logger
logger = Logger(service=SERVICE_NAME)


def run_mass_update(
    options: RunOptions,
    pantheon_client: PantheonClientInterface,
    command_runner: CommandRunner,
    site_id_source: Optional[SiteIdSource] = None,
    applier: Optional[UpdateApplier] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Apply all available upstream updates to all selected sites

    Orchestrates the complete workflow:
    1. Resolve candidate sites (organization or site id source, upstream filter)
    2. Discover sites with pending updates
    3. Apply updates and run post-update tasks site by site
    4. Log the summary

    Args:
        options: Run options
        pantheon_client: Authenticated Pantheon client
        command_runner: Runner for maintenance commands
        site_id_source: Source of site ids when no organization is given
        applier: Override for the per-site apply state machine
        correlation_id: Run identifier for tracing

    Returns:
        dict: Execution summary

    Raises:
        ConfigurationError: If no sites can be selected
        FilterEmptyError: If the upstream filter matches nothing
        BatchFailedError: If one or more sites failed, after the summary
    """
    execution_start_time = time.time()
    correlation_id = correlation_id or str(uuid.uuid4())
    logger.append_keys(correlation_id=correlation_id)

    logger.info("Starting Pantheon mass update", extra={
        "dry_run": options.dry_run,
        "org": options.org or None,
        "upstream": options.upstream or None,
        "skip_frozen": options.skip_frozen,
    })

    try:
        sites = SiteSource(pantheon_client, site_id_source).resolve(options)

        discovery = UpdateDiscovery(pantheon_client)
        records = discovery.discover(sites)

        updater = MassUpdater(
            applier=applier or UpdateApplier(pantheon_client),
            post_action_runner=PostActionRunner(command_runner),
            correlation_id=correlation_id,
        )
        updater.run(records, options)

        summary = updater.reporter.summary()
        summary.update({
            "correlation_id": correlation_id,
            "sites_found": len(sites),
            "discovery_errors": [str(error) for error in discovery.errors],
            "dry_run": options.dry_run,
            "execution_time_seconds": round(time.time() - execution_start_time, 2),
        })

        if updater.reporter.outcome.failed:
            logger.error(f"{updater.reporter.outcome.failed} site(s) failed", extra={
                "failed_sites": summary["failed_sites"],
            })
        updater.reporter.raise_for_failures()
        return summary

    except (ConfigurationError, FilterEmptyError) as e:
        logger.error(str(e), extra={"error_type": type(e).__name__})
        metrics.add_metric(name="ConfigurationErrors", unit=MetricUnit.Count, value=1)
        raise

    except BatchFailedError:
        metrics.add_metric(name="MassUpdateFailures", unit=MetricUnit.Count, value=1)
        raise

    finally:
        metrics.add_metric(name="MassUpdateExecutionDuration", unit=MetricUnit.Seconds,
                           value=time.time() - execution_start_time)
        metrics.flush_metrics()

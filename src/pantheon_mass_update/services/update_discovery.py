"""
Finds which sites have pending upstream updates
"""

import time
from collections import OrderedDict
from typing import Dict, List

from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.exceptions import DiscoveryError
from pantheon_mass_update.metrics import metrics
from pantheon_mass_update.models.site import DEFAULT_ENV, Site, SiteUpdateRecord

logger = Logger(service=SERVICE_NAME, child=True)


class UpdateDiscovery:
    """
    Builds one SiteUpdateRecord per site that has at least one pending commit
    """

    def __init__(self, pantheon_client, env_id: str = DEFAULT_ENV):
        self.pantheon_client = pantheon_client
        self.env_id = env_id
        self.errors: List[DiscoveryError] = []

    def discover(self, sites: List[Site]) -> Dict[str, SiteUpdateRecord]:
        """
        Query upstream status for every site

        A failed query is logged and the site is left out of this run; there
        are no retries.

        Args:
            sites: Candidate sites

        Returns:
            dict: site id -> SiteUpdateRecord, in site order
        """
        logger.info("Fetching the list of available updates for each site...")
        start_time = time.time()

        self.errors = []
        records: Dict[str, SiteUpdateRecord] = OrderedDict()

        for site in sites:
            try:
                updates = self.pantheon_client.get_upstream_updates(site.id, self.env_id)
            except Exception as e:
                error = DiscoveryError(site.name, f"Could not check updates for {site.name}: {e}")
                logger.warning(str(error), extra={
                    "site": site.name,
                    "site_id": site.id,
                    "error_type": type(e).__name__,
                })
                self.errors.append(error)
                continue

            if not updates:
                logger.debug(f"{site.name} is up to date")
                continue

            records[site.id] = SiteUpdateRecord(site=site, updates=tuple(updates))

        logger.info(f"{len(records)} sites need updates.", extra={
            "sites_checked": len(sites),
            "sites_with_updates": len(records),
            "discovery_errors": len(self.errors),
            "duration_seconds": round(time.time() - start_time, 2),
        })
        metrics.add_metric(name="SitesChecked", unit=MetricUnit.Count, value=len(sites))
        metrics.add_metric(name="SitesWithUpdates", unit=MetricUnit.Count, value=len(records))
        metrics.add_metric(name="DiscoveryErrors", unit=MetricUnit.Count, value=len(self.errors))

        return records

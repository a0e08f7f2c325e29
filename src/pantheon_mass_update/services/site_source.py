"""
Resolves the candidate set of sites for a run
"""

import sys
from abc import ABC, abstractmethod
from typing import IO, Iterable, List, Optional

from aws_lambda_powertools import Logger

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.exceptions import ConfigurationError, FilterEmptyError
from pantheon_mass_update.models.run_options import RunOptions
from pantheon_mass_update.models.site import Site

logger = Logger(service=SERVICE_NAME, child=True)

NO_SOURCE_HINT = (
    'Provide a list of sites via STDIN or use --org=<uuid>. Try '
    '"terminus site:list --format=list | pantheon-mass-update" or "pantheon-mass-update --org=<uuid>".'
)


class SiteIdSource(ABC):
    """
    Supplies externally provided site identifiers (UUIDs or names)
    """

    @abstractmethod
    def read_site_ids(self) -> Iterable[str]:
        pass


class StaticSiteIdSource(SiteIdSource):
    """Fixed in-memory sequence of site ids"""

    def __init__(self, site_ids: Iterable[str]):
        self.site_ids = list(site_ids)

    def read_site_ids(self) -> Iterable[str]:
        return [site_id.strip() for site_id in self.site_ids if site_id and site_id.strip()]


class StdinSiteIdSource(SiteIdSource):
    """Line-delimited site ids piped on standard input"""

    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream if stream is not None else sys.stdin

    def read_site_ids(self) -> Iterable[str]:
        # Nothing was piped in
        if self.stream is None or self.stream.isatty():
            return []
        return [line.strip() for line in self.stream if line.strip()]


class SiteSource:
    """
    Looks sites up by organization or from a site id source, then filters by upstream
    """

    def __init__(self, pantheon_client, site_id_source: Optional[SiteIdSource] = None):
        self.pantheon_client = pantheon_client
        self.site_id_source = site_id_source

    def resolve(self, options: RunOptions) -> List[Site]:
        """
        Resolve the candidate sites for a run

        Args:
            options: Run options; `org` takes precedence over the site id source

        Returns:
            list: Candidate sites

        Raises:
            ConfigurationError: If no source yields any site
            FilterEmptyError: If the upstream filter excludes every site
        """
        if options.org:
            sites = self._sites_from_org(options.org)
        else:
            sites = self._sites_from_ids()

        if options.upstream:
            sites = self.filter_by_upstream(sites, options.upstream)

        logger.info(f"Found {len(sites)} sites.", extra={
            "site_count": len(sites),
            "org": options.org or None,
            "upstream": options.upstream or None,
        })
        return sites

    def _sites_from_org(self, org_id: str) -> List[Site]:
        logger.info(f"Fetching sites from organization {org_id}...")
        sites = self.pantheon_client.get_organization_sites(org_id)
        if not sites:
            raise ConfigurationError(f"No sites found in organization {org_id}.")
        return sites

    def _sites_from_ids(self) -> List[Site]:
        site_ids = list(self.site_id_source.read_site_ids()) if self.site_id_source else []

        sites = []
        for site_id in site_ids:
            try:
                sites.append(self.pantheon_client.get_site(site_id))
            except Exception as e:
                # An unknown id only removes that line from the run
                logger.debug(f"Ignoring unresolvable site id {site_id}: {e}")
                continue

        if not sites:
            raise ConfigurationError(NO_SOURCE_HINT)
        return sites

    @staticmethod
    def filter_by_upstream(sites: List[Site], upstream_id: str) -> List[Site]:
        """
        Keep only sites built from the given upstream

        Raises:
            FilterEmptyError: If no site uses the upstream
        """
        filtered = [site for site in sites if site.upstream_id == upstream_id]
        if not filtered:
            raise FilterEmptyError('None of the specified sites use the given upstream.')
        return filtered

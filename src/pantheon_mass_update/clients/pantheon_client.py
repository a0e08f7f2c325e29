"""
Pantheon API client interface
"""

import random
import re
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update import SERVICE_NAME, __version__
from pantheon_mass_update.exceptions import PantheonAPIError
from pantheon_mass_update.metrics import metrics
from pantheon_mass_update.models.site import Environment, Site, UpdateCommit
from pantheon_mass_update.models.workflow import Workflow

# Initialize structured logger
logger = Logger(service=SERVICE_NAME, child=True)

UUID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)

# Methods that are resent after a read timeout or a 5xx response
IDEMPOTENT_METHODS = ["GET"]

MAX_RETRY_AFTER_SECONDS = 300


class PantheonClientInterface(ABC):
    """
    Interface for the Pantheon operations the mass updater consumes
    """

    @abstractmethod
    def get_site(self, site_id: str) -> Site:
        """
        Look up a site by UUID or machine name

        Args:
            site_id: Site UUID or name

        Returns:
            Site: The resolved site
        """
        pass

    @abstractmethod
    def get_organization_sites(self, org_id: str) -> List[Site]:
        """
        List all sites that are members of an organization

        Args:
            org_id: Organization UUID

        Returns:
            list: Sites in the organization
        """
        pass

    @abstractmethod
    def get_site_frozen(self, site_id: str) -> bool:
        """Query the current frozen flag of a site"""
        pass

    @abstractmethod
    def get_environment(self, site_id: str, env_id: str) -> Environment:
        """Fetch one environment of a site, including its connection mode"""
        pass

    @abstractmethod
    def get_upstream_updates(self, site_id: str, env_id: str) -> List[UpdateCommit]:
        """
        Get the pending upstream commits for an environment

        Returns:
            list: Commits in the order reported by the API
        """
        pass

    @abstractmethod
    def apply_upstream_updates(self, site_id: str, env_id: str, updatedb: bool,
                               accept_upstream: bool) -> Workflow:
        """
        Start the apply-upstream-updates workflow on an environment

        Args:
            site_id: Site UUID
            env_id: Environment name
            updatedb: Run database updates after applying
            accept_upstream: Resolve conflicts in favour of the upstream

        Returns:
            Workflow: Handle for the started workflow
        """
        pass

    @abstractmethod
    def get_workflow(self, site_id: str, workflow_id: str) -> Workflow:
        """Refresh a workflow snapshot"""
        pass


class PantheonClient(PantheonClientInterface):
    """
    Pantheon API client implementation with machine-token auth and retry logic
    """

    DEFAULT_BASE_URL = "https://terminus.pantheon.io/api"
    PAGE_SIZE = 100

    def __init__(self, base_url: Optional[str] = None, timeout: int = 30, max_retries: int = 3):
        """
        Initialize Pantheon client

        Args:
            base_url: API root, defaults to the public Terminus endpoint
            timeout: Per-request timeout in seconds
            max_retries: Retries for timeouts, connection errors and rate limits
        """
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.user_id = None

        self.session = requests.Session()

        # Idempotent reads are also retried at the transport level
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=IDEMPOTENT_METHODS
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': f'PantheonMassUpdate/{__version__}'
        })

    def authenticate(self, machine_token: str) -> None:
        """
        Exchange a machine token for a session token

        Raises:
            PantheonAPIError: If the token is rejected
        """
        response = self._make_request("POST", "/authorize/machine-token", json={
            'machine_token': machine_token.strip(),
            'client': 'terminus',
        })
        session_token = response.get('session')
        if not session_token:
            raise PantheonAPIError("Authentication response did not contain a session token")

        self.user_id = response.get('user_id')
        self.session.headers['Authorization'] = f'Bearer {session_token}'
        logger.info("Authenticated with Pantheon", extra={"user_id": self.user_id})

    def _make_request(self, method: str, endpoint: str, params: Dict = None, json: Dict = None):
        """
        Make HTTP request with exponential backoff retry logic

        Args:
            method: HTTP method
            endpoint: API path relative to the base URL
            params: Query parameters
            json: JSON request body

        Returns:
            Decoded JSON response

        Raises:
            PantheonAPIError: If request fails after all retries
        """
        url = f"{self.base_url}{endpoint}"
        request_start_time = time.time()

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug("Making Pantheon API request", extra={
                    "method": method,
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                })

                response = self.session.request(method, url, params=params, json=json, timeout=self.timeout)

                if response.status_code == 429:
                    if attempt >= self.max_retries:
                        raise PantheonAPIError(
                            f"Rate limit exceeded after {self.max_retries} retries: {endpoint}", 429
                        )
                    retry_after = self._retry_after_seconds(response.headers.get('Retry-After'))
                    delay = retry_after or (2 ** attempt) + random.uniform(0, 1)
                    logger.warning("Rate limited by Pantheon API", extra={
                        "endpoint": endpoint,
                        "attempt": attempt + 1,
                        "retry_after_seconds": delay,
                    })
                    metrics.add_metric(name="PantheonAPIRateLimits", unit=MetricUnit.Count, value=1)
                    time.sleep(delay)
                    continue

                if response.status_code == 401:
                    raise PantheonAPIError("Authentication failed - invalid or expired machine token", 401)
                elif response.status_code == 403:
                    raise PantheonAPIError(f"Access forbidden: {endpoint}", 403)
                elif response.status_code == 404:
                    raise PantheonAPIError(f"Resource not found: {endpoint}", 404)
                elif not response.ok:
                    logger.error("Pantheon API HTTP error", extra={
                        "endpoint": endpoint,
                        "status_code": response.status_code,
                        "response_text": response.text[:500]
                    })
                    metrics.add_metric(name="PantheonAPIHTTPErrors", unit=MetricUnit.Count, value=1)
                    raise PantheonAPIError(f"HTTP {response.status_code}: {response.text[:200]}",
                                           response.status_code)

                logger.debug("Pantheon API request successful", extra={
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "total_duration_seconds": round(time.time() - request_start_time, 3),
                })
                metrics.add_metric(name="PantheonAPIRequests", unit=MetricUnit.Count, value=1)

                if not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError as e:
                    raise PantheonAPIError(f"Invalid JSON response from {endpoint}: {e}")

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                if not self._can_resend(method, e):
                    metrics.add_metric(name="PantheonAPIConnectionFailures", unit=MetricUnit.Count, value=1)
                    raise PantheonAPIError(f"{type(e).__name__} on {method} {endpoint}; not retried")
                if attempt < self.max_retries:
                    delay = (2 ** attempt) + random.uniform(0, 1)
                    logger.warning("Pantheon API transient error", extra={
                        "endpoint": endpoint,
                        "error_type": type(e).__name__,
                        "attempt": attempt + 1,
                        "retry_delay_seconds": delay,
                    })
                    time.sleep(delay)
                    continue
                metrics.add_metric(name="PantheonAPIConnectionFailures", unit=MetricUnit.Count, value=1)
                raise PantheonAPIError(f"{type(e).__name__} after {self.max_retries} retries: {endpoint}")

            except requests.exceptions.RequestException as e:
                raise PantheonAPIError(f"Request failed: {e}")

    @staticmethod
    def _can_resend(method: str, error: Exception) -> bool:
        """
        Decide whether a request that raised a transport error may be sent again

        Reads are always safe. Anything else is only resent when the
        connection was never established.
        """
        if method.upper() in IDEMPOTENT_METHODS:
            return True
        if isinstance(error, requests.exceptions.ConnectTimeout):
            return True
        return (isinstance(error, requests.exceptions.ConnectionError)
                and not isinstance(error, requests.exceptions.Timeout))

    @staticmethod
    def _retry_after_seconds(value: Optional[str]) -> float:
        """
        Parse a Retry-After header given either as seconds or as an HTTP date

        Returns 0 when the header is missing, unparseable or already past.
        """
        if not value:
            return 0
        value = value.strip()
        if value.isdigit():
            return min(int(value), MAX_RETRY_AFTER_SECONDS)

        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable Retry-After header: {value}")
            return 0
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)

        seconds = (retry_at - datetime.now(timezone.utc)).total_seconds()
        return min(max(seconds, 0), MAX_RETRY_AFTER_SECONDS)

    def get_site(self, site_id: str) -> Site:
        """
        Look up a site by UUID or machine name

        Raises:
            PantheonAPIError: If the site does not exist or is not accessible
        """
        site_id = site_id.strip()
        if not UUID_PATTERN.match(site_id):
            site_id = self._make_request("GET", f"/site-names/{site_id}")['id']

        data = self._make_request("GET", f"/sites/{site_id}")
        return Site.from_api(data)

    def get_organization_sites(self, org_id: str) -> List[Site]:
        """
        List all sites that are members of an organization, following pagination

        Raises:
            PantheonAPIError: If the organization cannot be read
        """
        logger.info(f"Fetching sites from organization {org_id}")

        sites = []
        params = {'limit': self.PAGE_SIZE}
        while True:
            page = self._make_request("GET", f"/organizations/{org_id}/memberships/sites", params=params)
            memberships = page if isinstance(page, list) else list(page.values())
            for membership in memberships:
                site_data = membership.get('site') or {}
                if site_data.get('id'):
                    sites.append(Site.from_api(site_data))

            if len(memberships) < self.PAGE_SIZE:
                break
            params = {'limit': self.PAGE_SIZE, 'start': memberships[-1].get('id')}

        logger.debug(f"Organization {org_id} has {len(sites)} sites")
        return sites

    def get_site_frozen(self, site_id: str) -> bool:
        data = self._make_request("GET", f"/sites/{site_id}")
        return bool(data.get('frozen'))

    def get_environment(self, site_id: str, env_id: str) -> Environment:
        environments = self._make_request("GET", f"/sites/{site_id}/environments")
        if env_id not in environments:
            raise PantheonAPIError(f"Environment '{env_id}' not found for site {site_id}", 404)
        return Environment.from_api(site_id, env_id, environments[env_id])

    def get_upstream_updates(self, site_id: str, env_id: str) -> List[UpdateCommit]:
        status = self._make_request("GET", f"/sites/{site_id}/environments/{env_id}/code-upstream-updates")
        update_log = status.get('update_log') or {}

        # update_log is keyed by commit hash; key order is the API's commit order
        entries = update_log.values() if isinstance(update_log, dict) else update_log
        return [UpdateCommit.from_api(entry) for entry in entries]

    def apply_upstream_updates(self, site_id: str, env_id: str, updatedb: bool,
                               accept_upstream: bool) -> Workflow:
        payload = {
            'type': 'apply_upstream_updates',
            'params': {
                'updatedb': bool(updatedb),
                'xoption': 'theirs' if accept_upstream else False,
            },
        }
        data = self._make_request("POST", f"/sites/{site_id}/environments/{env_id}/workflows", json=payload)
        workflow = Workflow.from_api(site_id, data)
        logger.info("Started workflow", extra={
            "site_id": site_id,
            "env": env_id,
            "workflow_id": workflow.id,
            "workflow_type": workflow.type,
        })
        return workflow

    def get_workflow(self, site_id: str, workflow_id: str) -> Workflow:
        data = self._make_request("GET", f"/sites/{site_id}/workflows/{workflow_id}")
        return Workflow.from_api(site_id, data)

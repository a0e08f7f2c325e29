"""
Shared pytest fixtures for mass update tests.

Fixtures provided:
- fake_client: In-memory Pantheon client with scriptable failures
- fake_runner: Command runner that records calls and returns scripted exit codes
- make_site / make_record: Builders for sites and discovered update records
- options: RunOptions factory with fast polling

Nothing here talks to Pantheon or spawns processes.
"""

from typing import Dict, List, Optional

import pytest

from pantheon_mass_update.clients.command_runner import CommandRunner, PostAction
from pantheon_mass_update.clients.pantheon_client import PantheonClientInterface
from pantheon_mass_update.exceptions import PantheonAPIError
from pantheon_mass_update.models.run_options import RunOptions
from pantheon_mass_update.models.site import Environment, Site, SiteUpdateRecord, UpdateCommit
from pantheon_mass_update.models.workflow import Workflow


def commit(message: str = "Update core", author: str = "Upstream Bot") -> UpdateCommit:
    return UpdateCommit(datetime="2024-05-01T10:00:00", message=message, author=author)


class FakePantheonClient(PantheonClientInterface):
    """In-memory stand-in for PantheonClient"""

    def __init__(self):
        self.sites: Dict[str, Site] = {}
        self.org_sites: Dict[str, List[str]] = {}
        self.frozen: Dict[str, object] = {}
        self.modes: Dict[str, object] = {}
        self.updates: Dict[str, object] = {}
        self.apply_errors: Dict[str, Exception] = {}
        self.workflow_results: Dict[str, List[Optional[str]]] = {}
        self.apply_calls: List[tuple] = []
        self.workflow_polls: Dict[str, int] = {}

    def add_site(self, site_id: str, name: Optional[str] = None, upstream_id: str = "drupal-10",
                 updates: object = None, frozen: object = False, mode: object = "git",
                 workflow: Optional[List[Optional[str]]] = None) -> Site:
        site = Site(id=site_id, name=name or site_id, upstream_id=upstream_id)
        self.sites[site_id] = site
        self.updates[site_id] = [commit()] if updates is None else updates
        self.frozen[site_id] = frozen
        self.modes[site_id] = mode
        self.workflow_results[site_id] = workflow or ["succeeded"]
        return site

    def get_site(self, site_id: str) -> Site:
        for site in self.sites.values():
            if site_id in (site.id, site.name):
                return site
        raise PantheonAPIError(f"Resource not found: /site-names/{site_id}", 404)

    def get_organization_sites(self, org_id: str) -> List[Site]:
        if org_id not in self.org_sites:
            raise PantheonAPIError(f"Resource not found: /organizations/{org_id}", 404)
        return [self.sites[site_id] for site_id in self.org_sites[org_id]]

    def get_site_frozen(self, site_id: str) -> bool:
        value = self.frozen[site_id]
        if isinstance(value, Exception):
            raise value
        return value

    def get_environment(self, site_id: str, env_id: str) -> Environment:
        value = self.modes[site_id]
        if isinstance(value, Exception):
            raise value
        return Environment(id=env_id, site_id=site_id, connection_mode=value)

    def get_upstream_updates(self, site_id: str, env_id: str) -> List[UpdateCommit]:
        value = self.updates[site_id]
        if isinstance(value, Exception):
            raise value
        return list(value)

    def apply_upstream_updates(self, site_id: str, env_id: str, updatedb: bool,
                               accept_upstream: bool) -> Workflow:
        self.apply_calls.append((site_id, env_id, updatedb, accept_upstream))
        if site_id in self.apply_errors:
            raise self.apply_errors[site_id]
        self.workflow_polls[site_id] = 0
        return Workflow(id=f"wf-{site_id}", site_id=site_id, type="apply_upstream_updates")

    def get_workflow(self, site_id: str, workflow_id: str) -> Workflow:
        # Each poll returns the next scripted result; the last one repeats
        results = self.workflow_results[site_id]
        index = min(self.workflow_polls[site_id], len(results) - 1)
        self.workflow_polls[site_id] += 1
        result = results[index]
        return Workflow(
            id=workflow_id,
            site_id=site_id,
            type="apply_upstream_updates",
            result=result,
            started_at=1714557600.0,
            finished_at=1714557660.0 if result else None,
        )


class FakeCommandRunner(CommandRunner):
    """Records maintenance commands instead of running them"""

    def __init__(self, exit_codes: Optional[Dict[PostAction, object]] = None):
        self.exit_codes = exit_codes or {}
        self.calls: List[tuple] = []

    def run(self, action: PostAction, site_name: str, env_id: str) -> int:
        self.calls.append((action, site_name, env_id))
        code = self.exit_codes.get(action, 0)
        if isinstance(code, Exception):
            raise code
        return code


@pytest.fixture
def fake_client():
    return FakePantheonClient()


@pytest.fixture
def fake_runner():
    return FakeCommandRunner()


@pytest.fixture
def make_site():
    def _make(site_id="site-1", name=None, upstream_id="drupal-10"):
        return Site(id=site_id, name=name or site_id, upstream_id=upstream_id)
    return _make


@pytest.fixture
def make_record(make_site):
    def _make(site_id="site-1", name=None, count=1):
        site = make_site(site_id, name)
        return SiteUpdateRecord(site=site, updates=tuple(commit(f"Change {i}") for i in range(count)))
    return _make


@pytest.fixture
def options():
    def _make(**overrides):
        overrides.setdefault("poll_interval", 0)
        return RunOptions(**overrides)
    return _make

"""
Data models for Pantheon sites, environments and pending upstream commits
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

DEFAULT_ENV = "dev"

GIT_MODE = "git"
SFTP_MODE = "sftp"


@dataclass(frozen=True)
class Site:
    """
    Read-only snapshot of a Pantheon site

    The frozen flag is not kept here; it can change during a run and is
    queried just before applying.
    """
    id: str
    name: str
    upstream_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Site":
        """Build a Site from a `sites/{id}` payload"""
        upstream = data.get('upstream') or {}
        upstream_id = None
        if isinstance(upstream, dict):
            upstream_id = upstream.get('product_id') or upstream.get('id')
        return cls(
            id=data['id'],
            name=data.get('name') or data['id'],
            upstream_id=upstream_id or data.get('product_id'),
        )


@dataclass(frozen=True)
class Environment:
    """
    A deployment target belonging to exactly one site
    """
    id: str
    site_id: str
    connection_mode: str

    @classmethod
    def from_api(cls, site_id: str, env_id: str, data: dict) -> "Environment":
        # The API reports SFTP mode as on-server development
        mode = SFTP_MODE if data.get('on_server_development') else GIT_MODE
        return cls(id=env_id, site_id=site_id, connection_mode=mode)

    @property
    def is_git_mode(self) -> bool:
        return self.connection_mode == GIT_MODE


@dataclass(frozen=True)
class UpdateCommit:
    """
    One pending upstream change
    """
    datetime: str
    message: str
    author: str

    @classmethod
    def from_api(cls, data: dict) -> "UpdateCommit":
        return cls(
            datetime=str(data.get('datetime') or ''),
            message=(data.get('message') or '').strip(),
            author=data.get('author') or '',
        )


@dataclass(frozen=True)
class SiteUpdateRecord:
    """
    A site together with its ordered pending updates
    """
    site: Site
    updates: Tuple[UpdateCommit, ...] = field(default_factory=tuple)

    @property
    def update_count(self) -> int:
        return len(self.updates)

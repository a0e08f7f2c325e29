"""
Immutable configuration snapshot for one mass update run
"""

from dataclasses import dataclass
from typing import Optional

from pantheon_mass_update.exceptions import ConfigurationError


@dataclass(frozen=True)
class RunOptions:
    """
    Options controlling site selection, the apply call and post-update tasks
    """
    upstream: str = ''
    org: str = ''
    updatedb: bool = False
    accept_upstream: bool = False
    config_import: bool = False
    cache_clear: bool = False
    dry_run: bool = False
    skip_frozen: bool = True
    parallelism: int = 1
    poll_interval: float = 1.0
    workflow_timeout: Optional[float] = None

    def __post_init__(self):
        if self.parallelism < 1:
            raise ConfigurationError(f"parallelism must be at least 1, got {self.parallelism}")
        if self.poll_interval < 0:
            raise ConfigurationError(f"poll_interval cannot be negative, got {self.poll_interval}")
        if self.workflow_timeout is not None and self.workflow_timeout <= 0:
            raise ConfigurationError(
                f"workflow_timeout must be positive when set, got {self.workflow_timeout}"
            )

    @property
    def has_post_actions(self) -> bool:
        return self.updatedb or self.config_import or self.cache_clear

"""
Runs Drush maintenance commands through the Terminus CLI
"""

import shutil
import subprocess
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Tuple

from aws_lambda_powertools import Logger

from pantheon_mass_update import SERVICE_NAME

logger = Logger(service=SERVICE_NAME, child=True)


class PostAction(Enum):
    """Maintenance actions, declared in the order they run"""
    MIGRATE = ("migrate", "Database updates", ("updb", "-y"))
    CONFIG_IMPORT = ("import-config", "Config import", ("cim", "-y"))
    CACHE_CLEAR = ("clear-cache", "Cache clear", ("cr",))

    def __init__(self, slug: str, label: str, drush_args: Tuple[str, ...]):
        self.slug = slug
        self.label = label
        self.drush_args = drush_args


class CommandRunner(ABC):
    """
    Invoke-and-wait contract for maintenance commands
    """

    @abstractmethod
    def run(self, action: PostAction, site_name: str, env_id: str) -> int:
        """
        Run one maintenance action against a site environment

        Returns:
            int: Process exit status
        """
        pass


class TerminusCommandRunner(CommandRunner):
    """
    Shells out to `terminus drush <site>.<env> -- ...` with output passed through
    """

    def __init__(self, binary: str = 'terminus'):
        self.binary = binary

    def build_command(self, action: PostAction, site_name: str, env_id: str) -> List[str]:
        return [self.binary, 'drush', f'{site_name}.{env_id}', '--', *action.drush_args]

    def run(self, action: PostAction, site_name: str, env_id: str) -> int:
        """
        Raises:
            OSError: If the terminus binary cannot be executed
        """
        command = self.build_command(action, site_name, env_id)
        if shutil.which(self.binary) is None:
            raise FileNotFoundError(f"Terminus binary not found: {self.binary}")

        logger.debug("Running maintenance command", extra={"command": command})
        # stdout/stderr go straight to the operator's terminal
        completed = subprocess.run(command, check=False, stderr=subprocess.STDOUT)
        return completed.returncode

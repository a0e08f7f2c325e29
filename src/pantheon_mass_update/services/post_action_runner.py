"""
Best-effort maintenance commands run after a successful update
"""

from typing import List

from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.clients.command_runner import CommandRunner, PostAction
from pantheon_mass_update.exceptions import PostActionError
from pantheon_mass_update.metrics import metrics
from pantheon_mass_update.models.run_options import RunOptions
from pantheon_mass_update.models.site import DEFAULT_ENV, Site

logger = Logger(service=SERVICE_NAME, child=True)


def enabled_actions(options: RunOptions) -> List[PostAction]:
    """Actions switched on for this run, in execution order"""
    flags = {
        PostAction.MIGRATE: options.updatedb,
        PostAction.CONFIG_IMPORT: options.config_import,
        PostAction.CACHE_CLEAR: options.cache_clear,
    }
    return [action for action in PostAction if flags[action]]


class PostActionRunner:
    """
    Runs migrate, config import and cache clear independently of each other
    """

    def __init__(self, command_runner: CommandRunner, env_id: str = DEFAULT_ENV):
        self.command_runner = command_runner
        self.env_id = env_id

    def run(self, site: Site, options: RunOptions) -> List[PostActionError]:
        """
        Run every enabled action against the site

        Failures are logged and returned; they never raise and never stop
        the remaining actions.
        """
        errors = []
        for action in enabled_actions(options):
            logger.info(f"  Running {action.label.lower()} on {site.name}...", extra={
                "site": site.name,
                "action": action.slug,
            })
            try:
                exit_code = self.command_runner.run(action, site.name, self.env_id)
            except Exception as e:
                errors.append(self._failed(site, action, f"could not start command: {e}"))
                continue

            if exit_code != 0:
                errors.append(self._failed(site, action, f"exited with status {exit_code}"))

        return errors

    @staticmethod
    def _failed(site: Site, action: PostAction, detail: str) -> PostActionError:
        error = PostActionError(site.name, action.slug, f"{action.label} failed on {site.name}: {detail}")
        logger.warning(error.message, extra={"site": site.name, "action": action.slug})
        metrics.add_metric(name="PostActionFailures", unit=MetricUnit.Count, value=1)
        return error

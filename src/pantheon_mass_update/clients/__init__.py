# Client classes for external services

from pantheon_mass_update.clients.command_runner import CommandRunner, PostAction, TerminusCommandRunner
from pantheon_mass_update.clients.pantheon_client import PantheonClient, PantheonClientInterface
from pantheon_mass_update.clients.secrets_client import SecretsClient, SecretsClientInterface

__all__ = [
    'PantheonClient', 'PantheonClientInterface',
    'SecretsClient', 'SecretsClientInterface',
    'CommandRunner', 'TerminusCommandRunner', 'PostAction'
]

#!/usr/bin/env python3
"""
Command line runner for the Pantheon mass update

Usage:
    terminus site:list --format=list | pantheon-mass-update --updatedb
    pantheon-mass-update --org=<uuid> --upstream=<upstream-id> --dry-run

Environment Variables:
    # Credentials (one of)
    PANTHEON_MACHINE_TOKEN=your_machine_token
    MACHINE_TOKEN_SECRET_NAME=pantheon-machine-token   (read from AWS Secrets Manager)
    AWS_REGION=us-east-1

    # Optional
    PANTHEON_API_URL=https://terminus.pantheon.io/api
    TERMINUS_BINARY=terminus
    LOG_LEVEL=INFO
    MASS_UPDATE_ORG, MASS_UPDATE_UPSTREAM   defaults for --org / --upstream
"""

import argparse
import os
import sys
from typing import List, Optional

from pantheon_mass_update import __version__
from pantheon_mass_update.exceptions import (
    BatchFailedError,
    ConfigurationError,
    FilterEmptyError,
    PantheonAPIError,
    SecretsManagerError,
)
from pantheon_mass_update.models.run_options import RunOptions

EXIT_OK = 0
EXIT_SITES_FAILED = 1
EXIT_CONFIGURATION = 2


def load_env_file(env_file: str) -> bool:
    """
    Load KEY=VALUE pairs from a .env file without overriding the environment
    """
    if not os.path.exists(env_file):
        print(f"Environment file '{env_file}' not found.", file=sys.stderr)
        return False

    with open(env_file, 'r') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()

            if not line or line.startswith('#'):
                continue

            if '=' not in line:
                print(f"Warning: Invalid line {line_num} in {env_file}: {line}", file=sys.stderr)
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.strip()

            # Remove quotes if present
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]

            os.environ.setdefault(key, value)

    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pantheon-mass-update',
        description='Apply all available upstream updates to all sites.',
    )
    parser.add_argument('--upstream', default=None,
                        help='Update only sites using the given upstream')
    parser.add_argument('--org', default=None,
                        help='Fetch sites from a specific organization UUID')
    parser.add_argument('--sites', default='',
                        help='Comma-separated site names or UUIDs instead of reading STDIN')
    parser.add_argument('--updatedb', action='store_true',
                        help='Run update.php after updating (Drupal only)')
    parser.add_argument('--accept-upstream', action='store_true',
                        help='Attempt to automatically resolve conflicts in favor of the upstream')
    parser.add_argument('--config-import', action='store_true',
                        help='Run drush config:import after updating')
    parser.add_argument('--cache-clear', action='store_true',
                        help='Run drush cache:rebuild after updating')
    parser.add_argument('--dry-run', action='store_true',
                        help="Don't actually apply the updates")
    parser.add_argument('--skip-frozen', action=argparse.BooleanOptionalAction, default=True,
                        help='Skip frozen sites without error')
    parser.add_argument('--parallelism', type=int, default=1,
                        help='Number of sites to update concurrently')
    parser.add_argument('--poll-interval', type=float, default=1.0,
                        help='Seconds between workflow status checks')
    parser.add_argument('--workflow-timeout', type=float, default=None,
                        help='Give up on a workflow after this many seconds (default: wait forever)')
    parser.add_argument('--terminus-binary', default=None,
                        help='Terminus executable used for drush commands')
    parser.add_argument('--env-file', default=None,
                        help='Load environment variables from this file first')
    parser.add_argument('--log-level', default=None,
                        help='Log level (default: LOG_LEVEL or INFO)')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def options_from_args(args: argparse.Namespace) -> RunOptions:
    """
    Raises:
        ConfigurationError: If an option value is invalid
    """
    upstream = args.upstream if args.upstream is not None else os.environ.get('MASS_UPDATE_UPSTREAM', '')
    org = args.org if args.org is not None else os.environ.get('MASS_UPDATE_ORG', '')
    return RunOptions(
        upstream=upstream.strip(),
        org=org.strip(),
        updatedb=args.updatedb,
        accept_upstream=args.accept_upstream,
        config_import=args.config_import,
        cache_clear=args.cache_clear,
        dry_run=args.dry_run,
        skip_frozen=args.skip_frozen,
        parallelism=args.parallelism,
        poll_interval=args.poll_interval,
        workflow_timeout=args.workflow_timeout,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments, run the mass update and map the result to an exit code
    """
    args = build_parser().parse_args(argv)

    if args.env_file and not load_env_file(args.env_file):
        return EXIT_CONFIGURATION
    os.environ['LOG_LEVEL'] = (args.log_level or os.environ.get('LOG_LEVEL', 'INFO')).upper()
    os.environ.setdefault('POWERTOOLS_LOG_LEVEL', os.environ['LOG_LEVEL'])

    # Loggers read their level from the environment when first created
    from pantheon_mass_update.clients.command_runner import TerminusCommandRunner
    from pantheon_mass_update.clients.pantheon_client import PantheonClient
    from pantheon_mass_update.clients.secrets_client import SecretsClient
    from pantheon_mass_update.handler import run_mass_update
    from pantheon_mass_update.services.site_source import StaticSiteIdSource, StdinSiteIdSource

    try:
        options = options_from_args(args)

        secrets_client = SecretsClient(
            secret_name=os.environ.get('MACHINE_TOKEN_SECRET_NAME'),
            region_name=os.environ.get('AWS_REGION', 'us-east-1'),
        )
        pantheon_client = PantheonClient(base_url=os.environ.get('PANTHEON_API_URL'))
        pantheon_client.authenticate(secrets_client.get_machine_token())

        if args.sites:
            site_id_source = StaticSiteIdSource(args.sites.split(','))
        else:
            site_id_source = StdinSiteIdSource()

        run_mass_update(
            options,
            pantheon_client=pantheon_client,
            command_runner=TerminusCommandRunner(
                args.terminus_binary or os.environ.get('TERMINUS_BINARY', 'terminus')
            ),
            site_id_source=site_id_source,
        )
        return EXIT_OK

    except BatchFailedError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_SITES_FAILED
    except (ConfigurationError, FilterEmptyError, SecretsManagerError, PantheonAPIError) as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except KeyboardInterrupt:
        print("\nExecution interrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())

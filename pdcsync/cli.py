"""
cli.py - Command Line Entry Point
==================================
One `pdc-sync` command with a sub-command per utility.

Usage:
------
    pdc-sync post-proposal-versions --input-file proposals.csv \\
        --application-form-id 7 --applicant-column-name "Organization EIN" \\
        --proposal-external-id-column-name "Proposal ID"
    pdc-sync generate-application-form-json --input-file fields.csv \\
        --output-file form.json --opportunity-id 3 --funder "Example Fund"
    pdc-sync generate-base-fields-inserts --input-file fields.csv --output-file seed.sql
    pdc-sync test-client-credentials
    pdc-sync candid lookup 12-3456789
    pdc-sync candid update-all
    pdc-sync charity-navigator lookup --eins 12-3456789 987654321
    pdc-sync show-args

Connection settings (--pdc-api-base-url, --bearer-token, --oidc-*, API keys)
can also come from DS_* environment variables or a .env file; flags win.

Exit codes:
-----------
    0  completed (every row / EIN succeeded)
    1  fatal setup error, or at least one row / EIN failed
    2  bad command line (argparse)
"""

import argparse
import json
import logging
import sys

from . import candid, charity_navigator, form_schema, oidc, sql_seed, uploader
from .config import FixedDelay, Settings, load_settings, normalize_base_url, setup_logging
from .errors import SyncError


logger = logging.getLogger(__name__)


# =============================================================================
# SHARED OPTIONS
# =============================================================================

def _common_options() -> argparse.ArgumentParser:
    """
    Options every sub-command accepts.

    Defaults are SUPPRESS so that an absent flag leaves the value loaded
    from the environment alone.
    """
    common = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    group = common.add_argument_group("connection")
    group.add_argument("--pdc-api-base-url", help="Location of PDC API")
    group.add_argument("--bearer-token", help="PDC access token (skips the OIDC grant)")
    group.add_argument("--oidc-base-url", help="OpenID Connect authority base URL")
    group.add_argument("--oidc-client-id", help="OpenID Connect client ID")
    group.add_argument("--oidc-client-secret", help="OpenID Connect client secret")
    group.add_argument("--candid-api-key",
                       help="Candid Premier API key; get from account management at https://dashboard.candid.org/")
    group.add_argument("--charity-navigator-api-key",
                       help="Charity Navigator API key; get from https://developer.charitynavigator.org/")
    group.add_argument("--timeout-sec", type=int, help="Per-request timeout in seconds")
    group.add_argument("--debug", action="store_true", help="Enable debug logging")
    return common


def _add_delimiter(parser: argparse.ArgumentParser):
    parser.add_argument("--delimiter", default=",", choices=[",", "|", "\t"],
                        help="Field separator of the input file (default: ',')")


# =============================================================================
# COMMAND LINE ARGUMENT PARSING
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="pdc-sync",
        description="Synchronize nonprofit data between the PDC, Candid, and Charity Navigator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", metavar="<command>", required=True)

    # show-args
    p = commands.add_parser("show-args", aliases=["args"], parents=[common],
                            help="Show the settings parsed from the environment and command line")
    p.set_defaults(handler=cmd_show_args)

    # test-client-credentials
    p = commands.add_parser("test-client-credentials", aliases=["auth"], parents=[common],
                            help="Validate the OIDC client credentials by retrieving a token")
    p.add_argument("--output-file", "--write", dest="output_file", help="Write token to the specified file")
    p.set_defaults(handler=oidc.cmd_test_client_credentials)

    # post-proposal-versions
    p = commands.add_parser("post-proposal-versions", parents=[common],
                            help="Create applicants, proposals, and proposal versions from a CSV file")
    p.add_argument("--input-file", required=True, help="CSV file, one proposal version per row")
    p.add_argument("--application-form-id", required=True, type=int,
                   help="Id of the application form whose field labels match the CSV columns")
    p.add_argument("--applicant-column-name", required=True,
                   help="Column holding the applicant external id (e.g. the EIN)")
    p.add_argument("--proposal-external-id-column-name", required=True,
                   help="Column holding the proposal external id")
    p.add_argument("--output-file", help="Also write the posted versions to this JSON file")
    p.add_argument("--max-workers", type=int, default=argparse.SUPPRESS,
                   help="Cap on rows uploaded at once (default: all rows)")
    p.add_argument("--dry-run", action="store_true",
                   help="Load the file and fetch the form, but create nothing")
    _add_delimiter(p)
    p.set_defaults(handler=uploader.cmd_post_proposal_versions)

    # generate-application-form-json
    p = commands.add_parser("generate-application-form-json", parents=[common],
                            help="Build a POST /applicationForms body from the field mapping CSV")
    p.add_argument("--input-file", required=True)
    p.add_argument("--output-file", required=True)
    p.add_argument("--opportunity-id", required=True, type=int)
    p.add_argument("--funder", required=True, help="Funder name as used in the CSV column headers")
    _add_delimiter(p)
    p.set_defaults(handler=form_schema.cmd_generate_application_form_json)

    # generate-base-fields-inserts
    p = commands.add_parser("generate-base-fields-inserts", parents=[common],
                            help="Build an INSERT statement seeding the base fields table")
    p.add_argument("--input-file", required=True)
    p.add_argument("--output-file", required=True)
    p.add_argument("--table", default="base_fields", choices=list(sql_seed.ALLOWED_TABLES))
    _add_delimiter(p)
    p.set_defaults(handler=sql_seed.cmd_generate_base_fields_inserts)

    # candid
    p = commands.add_parser("candid", help="Interact with the Candid Premier API")
    candid_commands = p.add_subparsers(dest="candid_command", metavar="<command>", required=True)

    c = candid_commands.add_parser("lookup", parents=[common],
                                   help="Fetch and display information about an organization by its EIN")
    c.add_argument("ein", help="US tax ID of organization to look up")
    c.add_argument("--output-file", "--write", dest="output_file",
                   help="Write organization information to the specified JSON file")
    c.set_defaults(handler=candid.cmd_lookup)

    c = candid_commands.add_parser("update", parents=[common],
                                   help="Fetch information about an organization by its EIN, and upload to the PDC")
    c.add_argument("ein", help="US tax ID of organization to look up")
    c.set_defaults(handler=candid.cmd_update)

    c = candid_commands.add_parser("update-all", parents=[common],
                                   help="Update Candid profiles for all PDC proposals")
    c.add_argument("--candid-delay-sec", type=float, default=argparse.SUPPRESS,
                   help="Seconds to wait after each EIN (default: 6, for 10 calls/minute)")
    c.set_defaults(handler=candid.cmd_update_all)

    # charity-navigator
    p = commands.add_parser("charity-navigator", help="Interact with the Charity Navigator GraphQL API")
    cn_commands = p.add_subparsers(dest="charity_navigator_command", metavar="<command>", required=True)

    c = cn_commands.add_parser("lookup", parents=[common],
                               help="Fetch and display information about organizations by EIN")
    c.add_argument("--eins", nargs="+", required=True, help="US tax IDs of organizations to look up")
    c.add_argument("--output-file", "--write", dest="output_file",
                   help="Write organization information to the specified JSON file")
    c.set_defaults(handler=charity_navigator.cmd_lookup)

    c = cn_commands.add_parser("update", parents=[common],
                               help="Fetch organizations by EIN and upload them to the PDC")
    c.add_argument("--eins", nargs="+", required=True, help="US tax IDs of organizations to update")
    c.set_defaults(handler=charity_navigator.cmd_update)

    return parser


# =============================================================================
# SETTINGS OVERRIDES
# =============================================================================

_OVERRIDABLE = (
    "pdc_api_base_url",
    "bearer_token",
    "oidc_base_url",
    "oidc_client_id",
    "oidc_client_secret",
    "candid_api_key",
    "charity_navigator_api_key",
    "timeout_sec",
    "max_workers",
)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Copy every flag given on the command line onto the settings."""
    for name in _OVERRIDABLE:
        if hasattr(args, name):
            setattr(settings, name, getattr(args, name))
    settings.pdc_api_base_url = normalize_base_url(settings.pdc_api_base_url)
    settings.oidc_base_url = normalize_base_url(settings.oidc_base_url)
    if hasattr(args, "candid_delay_sec"):
        settings.candid_delay = FixedDelay(args.candid_delay_sec)
    if getattr(args, "debug", False):
        settings.log_level = "DEBUG"
    return settings


def cmd_show_args(args, settings: Settings) -> int:
    logger.info(f"Parsed settings: {json.dumps(settings.masked(), indent=2)}")
    return 0


# =============================================================================
# MAIN EXECUTION FUNCTION
# =============================================================================

def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = apply_overrides(load_settings(), args)
    except SyncError as e:
        setup_logging()
        logger.error(f"Fatal error: {e}")
        return 1

    setup_logging(settings.log_level)

    try:
        return args.handler(args, settings)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        return 130
    except (SyncError, FileNotFoundError) as e:
        # Configuration, authentication, input file, or initial fetch errors
        logger.error(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

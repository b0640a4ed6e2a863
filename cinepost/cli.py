import argparse
from pathlib import Path
from . import __version__
from .enums import OperationKind

def create_parser():
    parser = argparse.ArgumentParser(
        description=f"Movie/series metadata and writing assistant for review posts (v{__version__}).",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=Path, help='Path to TOML config file (overrides default search).')
    parser.add_argument('--profile', type=str, default='default', help='Configuration profile to use.')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default=None, help='Console logging level (overrides config).')
    parser.add_argument('--tmdb-language', type=str, default=None, help='Language for TMDB lookups (e.g., "de-DE", overrides config/env).')
    parser.add_argument('--quiet', '-q', action='store_true', default=False, help='Suppress all non-essential console output. Errors and results are still shown.')

    subparsers = parser.add_subparsers(dest='command', required=True, help='Action to perform')

    # --- Resolve Subparser ---
    parser_resolve = subparsers.add_parser('resolve', help='Run one operation through the provider cascade.', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser_resolve.add_argument("operation", choices=[op.value for op in OperationKind], help="Operation to perform.")
    parser_resolve.add_argument("title", type=str, help="Movie/series title (e.g. \"Inception (2010)\") or post title.")
    content_group = parser_resolve.add_mutually_exclusive_group()
    content_group.add_argument("--content", type=str, default=None, help="Post content / text the operation works on.")
    content_group.add_argument("--content-file", type=Path, default=None, help="Read the post content from this file.")
    parser_resolve.add_argument("--json", action="store_true", default=False, help="Print the result as JSON.")
    parser_resolve.add_argument("--provider-timeout-seconds", type=float, default=None, help="Per-provider timeout in seconds (overrides config).")
    parser_resolve.add_argument("--no-grounding", dest="gemini_use_grounding", action="store_false", default=None, help="Disable Google Search grounding for Gemini (overrides config).")
    parser_resolve.add_argument("--log-file", type=str, default=None, help="Log file path (overrides config).")

    # --- Config Subparser ---
    parser_config = subparsers.add_parser('config', help='Manage application configuration.')
    config_subparsers = parser_config.add_subparsers(dest='config_command', required=True, help='Configuration action to perform')

    parser_config_show = config_subparsers.add_parser('show', help='Show the currently loaded configuration.')
    parser_config_show.add_argument('--profile', type=str, default=argparse.SUPPRESS, help='Show configuration for a specific profile (merges with default).')
    parser_config_show.add_argument('--raw', action="store_true", help="Show the raw TOML content of the loaded config file without merging or validation.")

    config_subparsers.add_parser('validate', help='Validate the configuration file against the schema.')

    parser_config_generate = config_subparsers.add_parser('generate', help='Generate a default config.toml file.')
    parser_config_generate.add_argument('--output', type=Path, default=None, help='Optional path to save the generated config.toml. Defaults to config.toml in the current directory.')
    parser_config_generate.add_argument('--force', '-f', action='store_true', help='Overwrite the config file if it already exists at the target location.')

    # --- Setup Subparser ---
    parser_setup = subparsers.add_parser('setup', help='Interactively set up provider API keys.')
    parser_setup.add_argument("--dotenv-path", type=Path, default=None, help="Specify a custom path for the .env file (default: .env in CWD).")

    return parser

def parse_arguments(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, 'profile') or args.profile is None:
        args.profile = 'default'
    return args

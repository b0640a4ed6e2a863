#!/usr/bin/env python3
import sys
import logging
import asyncio
import json
from pathlib import Path
from typing import Any, Optional, Dict

import pytomlpp
from pydantic import ValidationError
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text

from cinepost.cli import parse_arguments
from cinepost.config_manager import (
    ConfigManager, ConfigHelper, interactive_api_setup,
    RootConfigModel, BaseProfileSettings, generate_default_toml_content,
    API_KEY_ENV_VARS, DEFAULT_CONFIG_FILENAME
)
from cinepost.log_setup import setup_logging
from cinepost.cascade import FallbackCascade
from cinepost.enums import OperationKind
from cinepost.exceptions import CinepostError, CascadeError, ConfigError
from cinepost.models import CascadeResult

log = logging.getLogger("cinepost")


def print_stderr_message(message: Any):
    Console(stderr=True).print(message)


def result_to_dict(result: CascadeResult, operation: OperationKind) -> Dict[str, Any]:
    value = result.metadata.to_dict() if result.metadata is not None else result.text
    return {
        "operation": operation.value,
        "provider": result.provider_name,
        "value": value,
        "citations": [{"uri": c.uri, "title": c.title} for c in result.citations],
        "attempts": [{"provider": a.provider_name, "outcome": str(a.outcome), "message": a.message} for a in result.attempts],
        "advisories": list(result.advisories),
    }


def render_result(console: Console, result: CascadeResult):
    if result.metadata is not None:
        table = Table(show_header=True, header_style="bold magenta", title=f"Metadata from {result.provider_name}")
        table.add_column("Field", style="cyan", min_width=12)
        table.add_column("Value", overflow="fold")
        for key, value in result.metadata.to_dict().items():
            table.add_row(key, value if value else "[dim](none)[/dim]")
        console.print(table)
    else:
        console.print(f"[bold]Answer from {result.provider_name}:[/bold]")
        console.print(Text(result.text or ""))

    if result.citations:
        console.print("\n[bold]Sources:[/bold]")
        for citation in result.citations:
            label = f"{citation.title} - " if citation.title else ""
            console.print(f"  {label}[link={citation.uri}]{citation.uri}[/link]")
    for advisory in result.advisories:
        console.print(f"[yellow]Note: {advisory}[/yellow]")


def read_content(args) -> str:
    content_file: Optional[Path] = getattr(args, 'content_file', None)
    if content_file:
        try:
            return content_file.read_text(encoding='utf-8')
        except OSError as e:
            raise CinepostError(f"Could not read content file '{content_file}': {e}") from e
    return getattr(args, 'content', None) or ""


async def run_resolve(args, cfg: ConfigHelper, output_console: Console):
    operation = OperationKind.parse(args.operation)
    content = read_content(args)
    if operation.is_text_operation and not content.strip():
        raise CinepostError(f"'{operation.value}' needs post content. Pass --content or --content-file.")

    cascade = FallbackCascade.from_config(cfg)
    result = await cascade.resolve(operation, args.title, content)

    if args.json:
        output_console.print_json(json.dumps(result_to_dict(result, operation)))
    else:
        render_result(output_console, result)


async def main_async(argv=None):
    args = parse_arguments(argv)
    is_quiet = getattr(args, 'quiet', False)
    console = Console(quiet=is_quiet)

    config_manager_instance: Optional[ConfigManager] = None
    cfg: Optional[ConfigHelper] = None

    try:
        if args.command == 'setup':
            if is_quiet:
                print_stderr_message("ERROR: Interactive setup cannot be run in quiet mode.")
                sys.exit(1)
            raw_log_level = getattr(args, 'log_level', None) or 'INFO'
            setup_logging(log_level_console=getattr(logging, raw_log_level.upper(), logging.INFO))
            log.debug(f"Executing setup command with .env path: {args.dotenv_path}")
            success = interactive_api_setup(dotenv_path_override=args.dotenv_path, quiet_mode=is_quiet)
            sys.exit(0 if success else 1)

        if args.command == 'config' and args.config_command == 'generate':
            setup_logging(log_level_console=logging.INFO)
            log.info("Executing 'config generate' command.")
            target_path = args.output.resolve() if args.output else (Path.cwd() / DEFAULT_CONFIG_FILENAME).resolve()
            log.debug(f"Generate config: target path {target_path}")

            if target_path.exists() and not args.force:
                if is_quiet:
                    print_stderr_message(f"Config file {target_path} exists. Use --force to overwrite (quiet mode).")
                    sys.exit(1)
                console.print(f"[bold yellow]Warning:[/bold yellow] Config file already exists at [cyan]{target_path}[/cyan].")
                if not Confirm.ask("Overwrite existing file?", default=False, console=console):
                    console.print("Config file generation cancelled.")
                    sys.exit(0)
                log.info(f"User confirmed overwrite for existing config file at {target_path}")

            try:
                target_path.parent.mkdir(parents=True, exist_ok=True)
                target_path.write_text(generate_default_toml_content(), encoding="utf-8")
            except OSError as e:
                print_stderr_message(f"Error: Could not write configuration file to {target_path}: {e}")
                log.error(f"Failed to write generated config to {target_path}: {e}")
                sys.exit(1)
            console.print(f"[green]✓ Default configuration file generated successfully at: {target_path}[/green]")
            log.info(f"Default config.toml generated at {target_path}")
            sys.exit(0)

        config_manager_instance = ConfigManager(
            config_path_override=getattr(args, 'config', None),
            interactive_fallback=not is_quiet and args.command != 'resolve',
            quiet_mode=is_quiet
        )
        cfg = ConfigHelper(config_manager_instance, args)

        log_level_str = cfg('log_level', 'INFO', arg_value=getattr(args, 'log_level', None))
        log_level_val_console = getattr(logging, str(log_level_str).upper(), logging.INFO)
        if is_quiet:
            log_level_val_console = max(log_level_val_console, logging.ERROR)
        setup_logging(
            log_level_console=log_level_val_console,
            log_file=cfg('log_file', None, arg_value=getattr(args, 'log_file', None))
        )
        log.debug(f"Full logging configured. Parsed args: {args}")
        log.debug(f"Using profile: {args.profile}")

        if args.command == 'config':
            if args.config_command == 'show':
                console.print(f"--- Configuration Effective for Profile: '{args.profile}' ---")
                config_file_loc = config_manager_instance.config_path
                if config_file_loc.is_file():
                    console.print(f"Config file loaded: [cyan]{config_file_loc}[/cyan]")
                else:
                    console.print(f"Config file [yellow]{config_file_loc}[/yellow] not found. Using internal defaults and environment variables.")
                if getattr(args, 'raw', False):
                    console.print("\n--- Raw TOML Content ---")
                    raw_content = config_manager_instance.get_raw_toml_content()
                    console.print(raw_content if raw_content else "# No config file loaded or content was empty.")
                else:
                    effective_settings: Dict[str, Any] = {key: cfg(key, default_value=None) for key in BaseProfileSettings.model_fields}
                    # Only whether a key is present, never the key itself
                    effective_settings["_api_keys_loaded_"] = {service: bool(cfg.get_api_key(service)) for service in API_KEY_ENV_VARS}
                    console.print(json.dumps(effective_settings, indent=2, default=str))
            elif args.config_command == 'validate':
                console.print(f"--- Validating Configuration File: {config_manager_instance.config_path} ---")
                if not config_manager_instance.config_path.is_file():
                    console.print(f"Config file '[yellow]{config_manager_instance.config_path}[/yellow]' not found. Nothing to validate.")
                    return
                try:
                    cfg_dict = pytomlpp.loads(config_manager_instance.config_path.read_text(encoding='utf-8'))
                    RootConfigModel.model_validate(cfg_dict)
                except pytomlpp.DecodeError as e_toml:
                    print_stderr_message(Text(f"Error: Config file '{config_manager_instance.config_path}' is not valid TOML: {e_toml}", style="bold red"))
                    sys.exit(1)
                except ValidationError as e_val:
                    print_stderr_message(Text(f"Error: Config file '{config_manager_instance.config_path}' validation failed:", style="bold red"))
                    for error_item in e_val.errors():
                        loc = " -> ".join(map(str, error_item['loc']))
                        print_stderr_message(f"  - Field `[yellow]{loc}[/yellow]`: {error_item['msg']}")
                    sys.exit(1)
                console.print("[green]Configuration file syntax is valid and conforms to the schema.[/green]")
                log.info(f"Config file '{config_manager_instance.config_path}' validated successfully.")

        elif args.command == 'resolve':
            # Results are printed even in quiet mode
            await run_resolve(args, cfg, Console())

    except ConfigError as e_cfg:
        print_stderr_message(Text(f"CONFIGURATION ERROR: {e_cfg}", style="bold red"))
        if log.handlers: log.critical(f"Config Error: {e_cfg}")
        sys.exit(2)
    except CascadeError as e_cascade:
        print_stderr_message(Text(str(e_cascade), style="bold red"))
        sys.exit(1)
    except CinepostError as e_app:
        if log.handlers: log.error(f"Application Error: {e_app}")
        print_stderr_message(Text(f"ERROR: {e_app}", style="bold red"))
        sys.exit(1)
    except KeyboardInterrupt:
        if log.handlers: log.warning("Operation interrupted by user.")
        print_stderr_message("\nCancelled by user.")
        sys.exit(130)


def main(argv=None):
    try:
        asyncio.run(main_async(argv))
    except KeyboardInterrupt:
        print_stderr_message("\nOperation cancelled by user (main entry).")
        sys.exit(130)


if __name__ == "__main__":
    main()

# cinepost/config_manager.py

import os
import logging
import argparse
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

import platformdirs
import pytomlpp
from dotenv import load_dotenv, find_dotenv, dotenv_values, set_key, unset_key
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console
from rich.prompt import Confirm

from .exceptions import ConfigError

log = logging.getLogger(__name__)
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_DOTENV_FILENAME = ".env"
APP_NAME = "cinepost"
APP_AUTHOR = "cinepost"

DEFAULT_PROVIDER_TIMEOUT = 15.0
DEFAULT_TMDB_BASE_URL = "https://api.themoviedb.org/3"
DEFAULT_TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
DEFAULT_OMDB_BASE_URL = "https://www.omdbapi.com/"
DEFAULT_GEMINI_MODEL = "gemini-3-pro-preview"
DEFAULT_GROQ_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_GROQ_MODEL = "llama-3.3-70b-versatile"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "deepseek/deepseek-chat-v3-0324:free"

# env var names per service, first non-empty wins
API_KEY_ENV_VARS: Dict[str, List[str]] = {
    'tmdb': ["TMDB_API_KEY"],
    'omdb': ["OMDB_API_KEY"],
    'gemini': ["GEMINI_API_KEY", "API_KEY", "GOOGLE_API_KEY"],
    'groq': ["GROQ_API_KEY"],
    'openrouter': ["OPENROUTER_API_KEY"],
}

class BaseProfileSettings(BaseModel):
    # Cascade
    provider_timeout_seconds: Optional[float] = Field(default=DEFAULT_PROVIDER_TIMEOUT, gt=0.0, description="Per-provider attempt timeout (seconds). Attempts are never retried.")
    cast_limit: Optional[int] = Field(default=5, ge=1, le=20, description="Number of top-billed cast names kept from movie databases.")

    # Structured movie databases
    tmdb_language: Optional[str] = Field(default='en-US', description="Language for TMDB lookups (e.g. 'en-US', 'de-DE').")
    tmdb_base_url: Optional[str] = Field(default=DEFAULT_TMDB_BASE_URL, description="TMDB v3 API base URL.")
    tmdb_image_base_url: Optional[str] = Field(default=DEFAULT_TMDB_IMAGE_BASE_URL, description="Prefix turning TMDB poster paths into absolute URLs.")
    omdb_base_url: Optional[str] = Field(default=DEFAULT_OMDB_BASE_URL, description="OMDb API base URL.")

    # Generative providers
    gemini_model: Optional[str] = Field(default=DEFAULT_GEMINI_MODEL, description="Gemini model name.")
    gemini_use_grounding: Optional[bool] = Field(default=True, description="Ground Gemini metadata lookups with Google Search.")
    gemini_thinking_budget: Optional[int] = Field(default=2000, ge=0, description="Gemini thinking token budget (0 disables thinking config).")
    groq_model: Optional[str] = Field(default=DEFAULT_GROQ_MODEL, description="Groq chat-completion model.")
    groq_base_url: Optional[str] = Field(default=DEFAULT_GROQ_BASE_URL, description="Groq OpenAI-compatible base URL.")
    openrouter_model: Optional[str] = Field(default=DEFAULT_OPENROUTER_MODEL, description="OpenRouter chat-completion model.")
    openrouter_base_url: Optional[str] = Field(default=DEFAULT_OPENROUTER_BASE_URL, description="OpenRouter OpenAI-compatible base URL.")

    # Logging Options
    log_file: Optional[str] = Field(default=None, description="Path to log file (e.g., cinepost.log).")
    log_level: Optional[str] = Field(default='INFO', description="Logging level: DEBUG, INFO, WARNING, ERROR.")

    @field_validator('log_level', mode='before')
    @classmethod
    def check_log_level(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR")
        return v.upper() if isinstance(v, str) else None

    @field_validator('tmdb_base_url', 'tmdb_image_base_url', 'omdb_base_url', 'groq_base_url', 'openrouter_base_url', mode='before')
    @classmethod
    def check_url(cls, v: Any) -> Optional[str]:
        if v is None: return None
        if not isinstance(v, str) or not v.startswith(('http://', 'https://')):
            raise ValueError("must be an absolute http(s) URL")
        return v

    @field_validator('gemini_use_grounding', mode='before')
    @classmethod
    def check_gemini_use_grounding(cls, v: Any) -> Optional[bool]:
        if v is not None and not isinstance(v, bool): raise ValueError("gemini_use_grounding must be a boolean")
        return v


class DefaultSettings(BaseProfileSettings):
    pass

class RootConfigModel(BaseModel):
    default: DefaultSettings = Field(default_factory=DefaultSettings)
    model_config = {'extra': 'allow'}


@dataclass(frozen=True)
class CascadeSettings:
    """Snapshot of the settings one cascade runs with."""
    provider_timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT
    cast_limit: int = 5
    tmdb_language: str = 'en-US'
    tmdb_base_url: str = DEFAULT_TMDB_BASE_URL
    tmdb_image_base_url: str = DEFAULT_TMDB_IMAGE_BASE_URL
    omdb_base_url: str = DEFAULT_OMDB_BASE_URL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_use_grounding: bool = True
    gemini_thinking_budget: int = 2000
    groq_model: str = DEFAULT_GROQ_MODEL
    groq_base_url: str = DEFAULT_GROQ_BASE_URL
    openrouter_model: str = DEFAULT_OPENROUTER_MODEL
    openrouter_base_url: str = DEFAULT_OPENROUTER_BASE_URL

    @classmethod
    def from_config(cls, cfg_helper: "ConfigHelper") -> "CascadeSettings":
        values: Dict[str, Any] = {}
        for f in fields(cls):
            val = cfg_helper(f.name, f.default)
            values[f.name] = f.default if val is None else val
        return cls(**values)


def generate_default_toml_content() -> str:
    default_settings = DefaultSettings()
    content_lines = ["# cinepost Default Configuration File"]
    content_lines.append("# API keys are read from the environment or a .env file (run `cinepost setup`).\n")

    sections: Dict[str, List[str]] = {
        "Cascade": ['provider_timeout_seconds', 'cast_limit'],
        "Movie Databases": ['tmdb_language', 'tmdb_base_url', 'tmdb_image_base_url', 'omdb_base_url'],
        "Generative Providers": ['gemini_model', 'gemini_use_grounding', 'gemini_thinking_budget', 'groq_model', 'groq_base_url', 'openrouter_model', 'openrouter_base_url'],
        "Logging Options": ['log_file', 'log_level'],
    }

    content_lines.append("[default]")
    for section_name, keys in sections.items():
        content_lines.append(f"\n  # --- {section_name} ---")
        for key in keys:
            field_info = BaseProfileSettings.model_fields.get(key)
            if not field_info:
                continue
            default_value = getattr(default_settings, key)
            if field_info.description:
                content_lines.append(f"  # {field_info.description}")

            toml_value_str: str
            if isinstance(default_value, str):
                escaped_default_value = default_value.replace('\\', '\\\\').replace('"', '\\"')
                toml_value_str = f'"{escaped_default_value}"'
            elif isinstance(default_value, bool):
                toml_value_str = str(default_value).lower()
            elif default_value is None:
                content_lines.append(f"  # {key} = # (not set, uses internal default or None)")
                continue
            else:
                toml_value_str = str(default_value)

            content_lines.append(f"  {key} = {toml_value_str}")

    content_lines.append("\n# You can create other profiles, e.g.:")
    content_lines.append("# [offline_llm]")
    content_lines.append("# openrouter_model = \"meta-llama/llama-3.3-70b-instruct:free\"")
    content_lines.append("# gemini_use_grounding = false")

    return "\n".join(content_lines)


class ConfigManager:
    def __init__(self, config_path_override: Optional[Path] = None, interactive_fallback: bool = False, quiet_mode: bool = False):
        self.console = Console(quiet=quiet_mode)
        self.quiet_mode = quiet_mode

        self.config_path = self._resolve_config_path(config_path_override)
        self._raw_toml_content_str: Optional[str] = None
        self._config = self._load_config(interactive_fallback=interactive_fallback)
        self._api_keys = self._load_env_keys()
        log.debug(f"Config path used: {self.config_path}")

    def _resolve_config_path(self, config_path_override: Optional[Path]) -> Path:
        if config_path_override:
            p = Path(config_path_override)
            log.debug(f"Using explicit config path target: {p.resolve()}")
            return p.resolve()

        cwd_path = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if cwd_path.is_file():
            log.debug(f"Found config file in current directory: {cwd_path}")
            return cwd_path.resolve()

        user_config_path_obj: Optional[Path] = None
        try:
            user_dir_str = platformdirs.user_config_dir(APP_NAME, APP_AUTHOR, ensure_exists=False)
            user_config_path_obj = Path(user_dir_str) / DEFAULT_CONFIG_FILENAME
            if user_config_path_obj.is_file():
                log.debug(f"Found config file in user config directory: {user_config_path_obj}")
                return user_config_path_obj.resolve()
        except OSError as e:
            log.warning(f"Could not access or check user config directory via platformdirs: {e}")

        proj_path = Path(__file__).parent.parent.resolve() / DEFAULT_CONFIG_FILENAME
        if proj_path.is_file():
            log.debug(f"Found config file in project directory: {proj_path}")
            return proj_path.resolve()

        if user_config_path_obj:
            log.debug(f"No config file found. Preferred default creation location: {user_config_path_obj.resolve()}")
            return user_config_path_obj.resolve()

        log.debug(f"No config file found. Defaulting to CWD for potential creation: {cwd_path.resolve()}")
        return cwd_path.resolve()

    def _create_default_config_interactively(self, target_path: Path) -> bool:
        if self.quiet_mode:
            log.info("Quiet mode: Skipping interactive creation of default config file.")
            return False

        self.console.print("[yellow]Configuration file not found at an expected location.[/yellow]")
        self.console.print("A default configuration file can be created at:")
        self.console.print(f"  [cyan]{target_path}[/cyan]")

        try:
            if not Confirm.ask("Would you like to create a default configuration file now?", default=True, console=self.console):
                self.console.print("[yellow]Skipping default configuration file creation. Using internal defaults.[/yellow]")
                log.info("User opted out of creating a default configuration file.")
                return False
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Config creation cancelled by user.[/yellow]")
            log.warning("User cancelled config creation during interactive prompt.")
            return False

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_text(generate_default_toml_content(), encoding="utf-8")
        except OSError as e_io:
            log.error(f"Failed to write default config to {target_path}: {e_io}")
            self.console.print(f"[bold red]Error creating configuration file: {e_io}[/bold red]")
            return False
        self.console.print(f"[green]✓ Default configuration file created at: {target_path}[/green]")
        log.info(f"Default configuration file created at {target_path}")
        return True

    def _load_config(self, interactive_fallback: bool = False) -> Dict[str, Any]:
        cfg_dict: Dict[str, Any] = {}
        config_file_existed_initially = self.config_path.is_file()

        if not config_file_existed_initially and interactive_fallback:
            if not self._create_default_config_interactively(self.config_path):
                log.warning("Proceeding without a config file. Using internal defaults.")
                self._raw_toml_content_str = "# No configuration file present or created.\n"
                return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

        if not self.config_path.is_file():
            log.info(f"Config file not found at '{self.config_path}'. Using internal defaults.")
            self._raw_toml_content_str = "# Config file not found or empty.\n"
            return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

        try:
            self._raw_toml_content_str = self.config_path.read_text(encoding='utf-8')
        except OSError as e_os:
            self._raw_toml_content_str = f"# Error reading config file: {e_os}\n"
            raise ConfigError(f"Failed to read config file '{self.config_path}': {e_os}") from e_os

        if not self._raw_toml_content_str.strip():
            log.warning(f"Config file '{self.config_path}' is empty. Using internal defaults.")
            self._raw_toml_content_str = "# Config file was empty.\n"
            return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

        try:
            cfg_dict = pytomlpp.loads(self._raw_toml_content_str)
            log.info(f"Loaded configuration from '{self.config_path}'")
        except pytomlpp.DecodeError as e_toml:
            raise ConfigError(f"Failed to parse TOML config '{self.config_path}': {e_toml}") from e_toml

        try:
            validated_config = RootConfigModel.model_validate(cfg_dict)
        except ValidationError as e_val:
            error_msgs = [f"  - Field `{' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
            error_summary = f"Config file '{self.config_path}' validation failed:\n" + "\n".join(error_msgs)
            log.error(error_summary)
            raise ConfigError(error_summary) from e_val
        log.debug("Config validation successful.")
        return validated_config.model_dump(exclude_unset=False, by_alias=False)

    def get_raw_toml_content(self) -> Optional[str]:
        return self._raw_toml_content_str

    def _load_env_keys(self) -> Dict[str, Optional[str]]:
        keys: Dict[str, Optional[str]] = {}
        env_path: Union[str, Path, None] = find_dotenv(usecwd=True)
        if env_path:
            log.debug(f"Loading environment variables from: {env_path}")
            load_dotenv(dotenv_path=env_path)
        else:
            log.debug(".env file not found by find_dotenv. Checking os.getenv directly.")

        for service, env_names in API_KEY_ENV_VARS.items():
            value: Optional[str] = None
            for env_name in env_names:
                raw = os.getenv(env_name)
                if raw and raw.strip():
                    value = raw.strip(); break
            keys[f'{service}_api_key'] = value
        keys['tmdb_language'] = os.getenv("TMDB_LANGUAGE")

        loaded = [k[:-len('_api_key')] for k, v in keys.items() if k.endswith('_api_key') and v]
        if loaded:
            log_msg_source = ".env file" if env_path and Path(env_path).exists() else "environment variables"
            log.info(f"Loaded API keys for {', '.join(loaded)} from {log_msg_source}.")
        else:
            log.debug("No provider API keys set in .env or environment variables.")
        return keys

    def get_value(self, key: str, profile: str = 'default', command_line_value: Any = None, default_value: Any = None) -> Any:
        if command_line_value is not None:
            return command_line_value

        if key == 'tmdb_language' and self._api_keys.get('tmdb_language'):
            return self._api_keys['tmdb_language']

        profile_settings_dict = self._config.get(profile, {})
        if isinstance(profile_settings_dict, dict) and profile_settings_dict.get(key) is not None:
            return profile_settings_dict[key]

        default_settings_dict = self._config.get('default', {})
        if isinstance(default_settings_dict, dict) and default_settings_dict.get(key) is not None:
            return default_settings_dict[key]

        # Fallback to the pydantic model's default
        if default_value is None and key in BaseProfileSettings.model_fields:
            field_info = BaseProfileSettings.model_fields[key]
            if field_info.default_factory is not None:
                return field_info.default_factory()
            return field_info.default

        return default_value

    def get_api_key(self, service_name: str) -> Optional[str]:
        key_name = f"{service_name.lower()}_api_key"
        return self._api_keys.get(key_name)

    def get_profile_settings(self, profile: str = 'default') -> Dict[str, Any]:
        base_defaults = DefaultSettings().model_dump(exclude_unset=False, by_alias=False)

        default_section_settings = self._config.get('default', {})
        if isinstance(default_section_settings, dict):
            for k, v in default_section_settings.items():
                if v is not None or k not in base_defaults:
                    base_defaults[k] = v

        final_settings = base_defaults.copy()

        if profile != 'default' and profile in self._config:
            profile_specific_data = self._config.get(profile, {})
            if isinstance(profile_specific_data, dict):
                for k, v in profile_specific_data.items():
                    if v is not None:
                        final_settings[k] = v
            else:
                log.warning(f"Profile '{profile}' in config is not a dictionary. Skipping merge for this profile.")
        elif profile != 'default':
            log.debug(f"Profile '{profile}' not found in config. Using effectively merged default settings.")
        return final_settings


class ConfigHelper:
    def __init__(self, config_manager: ConfigManager, args_ns: argparse.Namespace):
        self.manager = config_manager
        self.args = args_ns
        self.profile = getattr(args_ns, 'profile', 'default') or 'default'

    def __call__(self, key: str, default_value: Any = None, arg_value: Any = None) -> Any:
        cmd_line_val = arg_value if arg_value is not None else getattr(self.args, key, None)
        return self.manager.get_value(key, self.profile, cmd_line_val, default_value)

    def get_api_key(self, service_name: str) -> Optional[str]:
        return self.manager.get_api_key(service_name)


def interactive_api_setup(dotenv_path_override: Optional[Path] = None, quiet_mode: bool = False) -> bool:
    console = Console()
    err_console = Console(stderr=True)

    if quiet_mode:
        err_console.print("ERROR: Interactive API setup cannot run in quiet mode.")
        return False

    resolved_dotenv_path = dotenv_path_override.resolve() if dotenv_path_override else Path.cwd() / DEFAULT_DOTENV_FILENAME
    log.info(f"Starting interactive API setup. Target .env file: {resolved_dotenv_path}")

    console.print("--- API Key Setup ---")
    console.print(f"This will guide you through setting up provider API keys in '{resolved_dotenv_path}'.")
    console.print("Press Enter to keep the current value (if any) or skip if not set.")

    current_values: Dict[str, Optional[str]] = {}
    if resolved_dotenv_path.is_file():
        log.debug(f"Loading existing values from {resolved_dotenv_path}")
        current_values = dotenv_values(resolved_dotenv_path)

    prompts = {
        "TMDB_API_KEY": "Enter your TMDB API Key (v3)",
        "OMDB_API_KEY": "Enter your OMDb API Key",
        "GEMINI_API_KEY": "Enter your Gemini API Key",
        "GROQ_API_KEY": "Enter your Groq API Key",
        "OPENROUTER_API_KEY": "Enter your OpenRouter API Key",
    }
    updated_any = False

    try:
        for key, prompt in prompts.items():
            current = current_values.get(key) or ""
            # Keys are secrets: show only whether one is set
            prompt_text = f"{prompt} [{'set' if current else 'not set'}]: "
            user_input = console.input(prompt_text, password=True).strip()

            if user_input:
                set_key(resolved_dotenv_path, key, user_input, quote_mode="never")
                log.info(f"Set {key} in {resolved_dotenv_path}")
                console.print(f"  ✓ {key} saved.")
                updated_any = True
            elif current:
                console.print(f"  - {key} kept.")
            elif key in current_values and resolved_dotenv_path.is_file():
                unset_key(resolved_dotenv_path, key)
                log.info(f"Removed empty {key} from {resolved_dotenv_path}")
                console.print(f"  ✓ {key} removed (was empty).")
                updated_any = True
            else:
                console.print(f"  - {key} skipped (no value provided).")
    except KeyboardInterrupt:
        err_console.print("\nSetup cancelled by user.")
        log.warning("API setup cancelled by user during input.")
        return False
    except OSError as e_io:
        log.error(f"IOError during API setup writing to {resolved_dotenv_path}: {e_io}", exc_info=True)
        err_console.print(f"\nError: Could not write to .env file at '{resolved_dotenv_path}'. Check permissions.")
        return False

    if updated_any:
        console.print(f"\nConfiguration saved to: {resolved_dotenv_path}")
    else:
        console.print("\nNo changes made to .env file.")
    console.print("--- Setup Complete ---")
    return True

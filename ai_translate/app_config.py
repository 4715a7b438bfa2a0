"""Application configuration module for the translation sync tool."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

import yaml
from aiolimiter import AsyncLimiter
from dotenv import load_dotenv
from openai import AsyncOpenAI

from ai_translate.batcher import DEFAULT_BATCH_SIZE
from ai_translate.document_tree import DEFAULT_EXEMPT_KEYS
from ai_translate.errors import SetupError
from ai_translate.language_catalog import DEFAULT_LANGUAGES_FILE
from ai_translate.logging_config import setup_logger
from ai_translate.sync_engine import DEFAULT_MAX_RETRIES, SyncOptions
from ai_translate.translation_client import normalize_base_url


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str
    languages_file: str

    # Model configuration
    model_name: Optional[str]
    api_base_url: Optional[str]
    api_key: Optional[str]
    temperature: float
    max_response_tokens: int
    request_timeout: float
    requests_per_minute: int

    # Processing settings
    batch_size: int
    max_retries: int
    retry_base_delay: float
    exempt_keys: List[str]
    force: bool
    dry_run: bool
    show_progress: bool

    # OpenAI client
    openai_client: Optional[AsyncOpenAI]

    def sync_options(self) -> SyncOptions:
        return SyncOptions(
            batch_size=self.batch_size,
            max_retries=self.max_retries,
            retry_base_delay=self.retry_base_delay,
            force=self.force,
            dry_run=self.dry_run,
            show_progress=self.show_progress,
            exempt_keys=frozenset(self.exempt_keys)
        )

    def rate_limiter(self) -> AsyncLimiter:
        return AsyncLimiter(max_rate=self.requests_per_minute, time_period=60)


def _compute_project_root() -> str:
    """Compute the project root directory."""
    script_real_path = os.path.realpath(__file__)
    script_dir = os.path.dirname(script_real_path)
    return os.path.abspath(os.path.join(script_dir, os.pardir))


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str, config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to defaults on any problem."""
    # An explicit path wins, then AI_TRANSLATE_CONFIG_FILE (possibly from .env), then config.yaml.
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = config_file or os.environ.get('AI_TRANSLATE_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a config.yaml file in '{project_root}' or set AI_TRANSLATE_CONFIG_FILE.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging') or {}
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/ai_translate.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    """Log the status of .env file loading."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.debug(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise SetupError(f"'{name}' must be a positive integer, got {value!r}.") from exc
    if number < 1:
        raise SetupError(f"'{name}' must be a positive integer, got {value!r}.")
    return number


def _create_openai_client(
        dry_run: bool,
        api_key: Optional[str],
        api_base_url: Optional[str],
        model_name: Optional[str],
        logger: logging.Logger
) -> Optional[AsyncOpenAI]:
    """Create the OpenAI client unless running in dry-run mode."""
    if dry_run:
        logger.info("Running in dry-run mode, OpenAI client will not be initialized")
        return None

    missing = [flag for flag, value in (('--ai-model', model_name),
                                        ('--ai-url', api_base_url),
                                        ('--ai-api-key', api_key)) if not value]
    if missing:
        raise SetupError(f"Missing parameters required for AI translation: {', '.join(missing)}")

    try:
        client = AsyncOpenAI(api_key=api_key, base_url=api_base_url)
        logger.info("OpenAI client initialized for %s", api_base_url)
        return client
    except Exception as e:
        raise SetupError(f"Failed to initialize OpenAI client: {e}") from e


def load_app_config(config_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Load application configuration from the YAML file, the environment and explicit overrides.

    Precedence, lowest first: built-in defaults, YAML file, environment
    variables, ``overrides`` (command-line flags). ``None`` overrides are ignored.

    Args:
        config_file: Optional path to the YAML configuration file.
        overrides: Values that take precedence over everything else.

    Returns:
        AppConfig: The loaded application configuration.

    Raises:
        SetupError: If a setting is invalid or the API client cannot be created.
    """
    project_root = _compute_project_root()

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root, config_file)

    logger = _setup_logger_from_config(config)
    _log_dotenv_status(logger, project_root)

    # Environment variables override the file
    env_overrides = {
        'model_name': os.environ.get('AI_TRANSLATE_MODEL'),
        'api_base_url': os.environ.get('AI_TRANSLATE_API_URL'),
        'batch_size': os.environ.get('AI_TRANSLATE_BATCH_SIZE'),
    }
    config.update({key: value for key, value in env_overrides.items() if value is not None})
    config.update({key: value for key, value in (overrides or {}).items() if value is not None})

    api_key = config.get('api_key') or os.environ.get('AI_TRANSLATE_API_KEY') or os.environ.get('OPENAI_API_KEY')
    api_base_url = config.get('api_base_url', 'https://api.openai.com/v1')
    if api_base_url:
        api_base_url = normalize_base_url(api_base_url)
    model_name = config.get('model_name', 'gpt-4o-mini')
    dry_run = bool(config.get('dry_run', False))

    languages_file = config.get('languages_file') or DEFAULT_LANGUAGES_FILE
    if not os.path.isabs(languages_file):
        languages_file = os.path.join(project_root, languages_file)

    openai_client = _create_openai_client(dry_run, api_key, api_base_url, model_name, logger)

    return AppConfig(
        project_root=project_root,
        languages_file=languages_file,
        model_name=model_name,
        api_base_url=api_base_url,
        api_key=api_key,
        temperature=float(config.get('temperature', 0.1)),
        max_response_tokens=_positive_int(config.get('max_response_tokens', 4096), 'max_response_tokens'),
        request_timeout=float(config.get('request_timeout', 60.0)),
        requests_per_minute=_positive_int(config.get('requests_per_minute', 60), 'requests_per_minute'),
        batch_size=_positive_int(config.get('batch_size', DEFAULT_BATCH_SIZE), 'batch_size'),
        max_retries=_positive_int(config.get('max_retries', DEFAULT_MAX_RETRIES), 'max_retries'),
        retry_base_delay=float(config.get('retry_base_delay', 1.0)),
        exempt_keys=list(config.get('exempt_keys', sorted(DEFAULT_EXEMPT_KEYS))),
        force=bool(config.get('force', False)),
        dry_run=dry_run,
        show_progress=bool(config.get('show_progress', True)),
        openai_client=openai_client
    )

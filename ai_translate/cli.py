"""Command-line entry point: ``ai-translate``."""
import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from ai_translate.app_config import load_app_config
from ai_translate.errors import SetupError
from ai_translate.language_catalog import load_language_catalog, validate_language_code
from ai_translate.sync_engine import SyncResult, sync_file
from ai_translate.translation_client import OpenAITranslator

logger = logging.getLogger(__name__)

USAGE_EXAMPLE = """
Example:
  ai-translate --template ./zh.json --target en --output ./en.json \\
    --ai-model gpt-4o --ai-url https://api.openai.com/v1 --ai-api-key your-api-key
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ai-translate',
        description="Incrementally translate a JSON localization file with an OpenAI-compatible model.",
        epilog=USAGE_EXAMPLE,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--template', help="Source localization JSON file.")
    parser.add_argument('--target', help="Target language code, as listed in the language catalog.")
    parser.add_argument('--output', help="Target localization JSON file (created or updated in place).")
    parser.add_argument('--ai-model', dest='model_name', help="Model name.")
    parser.add_argument('--ai-url', dest='api_base_url',
                        help="API base URL or full chat completions URL.")
    parser.add_argument('--ai-api-key', dest='api_key', help="API key (defaults to OPENAI_API_KEY).")
    parser.add_argument('--batch-size', type=int, help="Number of texts per request.")
    parser.add_argument('--force', action='store_true', default=None,
                        help="Re-translate every translatable text, even ones that look translated.")
    parser.add_argument('--dry-run', action='store_true', default=None,
                        help="Report what would be translated without calling the API or writing files.")
    parser.add_argument('--no-progress', dest='show_progress', action='store_false', default=None,
                        help="Disable the progress bar.")
    parser.add_argument('--config', dest='config_file', help="Path to a YAML configuration file.")
    return parser


def validate_base_options(args: argparse.Namespace) -> tuple[str, str]:
    """
    Check the options every run needs and resolve file paths.

    Returns:
        Tuple of the absolute template path and the absolute output path.

    Raises:
        SetupError: If an option is missing or the template does not exist.
    """
    if not args.template or not args.target or not args.output:
        raise SetupError("Missing parameters. --template, --target and --output are required.")

    template_path = os.path.abspath(args.template)
    if not os.path.exists(template_path):
        raise SetupError(f"Template file not found: {template_path}")

    return template_path, os.path.abspath(args.output)


async def run(args: argparse.Namespace) -> SyncResult:
    template_path, output_path = validate_base_options(args)

    config = load_app_config(args.config_file, overrides={
        'model_name': args.model_name,
        'api_base_url': args.api_base_url,
        'api_key': args.api_key,
        'batch_size': args.batch_size,
        'force': args.force,
        'dry_run': args.dry_run,
        'show_progress': args.show_progress,
    })

    catalog = load_language_catalog(config.languages_file)
    language = validate_language_code(args.target, catalog)

    logger.info("Starting AI translation task")
    logger.info("Template file: %s", template_path)
    logger.info("Target language: %s (%s)", language.name, language.code)
    logger.info("Output file: %s", output_path)
    logger.info("Model: %s", config.model_name)

    translator = OpenAITranslator(
        client=config.openai_client,
        model_name=config.model_name,
        temperature=config.temperature,
        max_response_tokens=config.max_response_tokens,
        request_timeout=config.request_timeout,
        rate_limiter=config.rate_limiter(),
        language_names={code: entry.name for code, entry in catalog.items()}
    )
    return await sync_file(template_path, output_path, language.code, translator, config.sync_options())


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the command line tool.

    Returns:
        int: 0 when the run finished (even if some batches were skipped), 1 on setup errors.
    """
    args = build_parser().parse_args(argv)
    try:
        result = asyncio.run(run(args))
    except SetupError as setup_exc:
        logger.error("Setup failed: %s", setup_exc)
        print(f"\nError: {setup_exc}", file=sys.stderr)
        print(USAGE_EXAMPLE, file=sys.stderr)
        return 1

    if result.failed_batches:
        logger.warning("%d batch(es) could not be translated; re-run to retry them.", result.failed_batches)
    return 0


def entry_point() -> None:
    sys.exit(main())


if __name__ == "__main__":
    entry_point()

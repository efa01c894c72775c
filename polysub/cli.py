"""Command-Line Interface handler for PolySub."""

import argparse
import logging
import os
import sys

from .config_loader import ConfigLoader, PipelineSettings, PROVIDERS
from .exceptions import BatchExhausted, ConfigurationError, PolySubError
from .log_setup import setup_logging
from .providers import resolve_api_key, validate_api_key
from .rate_governor import RateGovernor
from .subtitle_generator import build_generator, is_audio_file

logger = logging.getLogger(__name__) # Get logger for this module


class CLIHandler:
    """Parses arguments and orchestrates the PolySub process."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            description="PolySub: Translate subtitle files (or transcribe audio) with generative-AI models.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter # Show defaults in help
        )
        parser.add_argument(
            "-i", "--input",
            help="Path to the input .srt/.vtt subtitle file or audio file."
        )
        parser.add_argument(
            "-t", "--target-lang",
            help="Target language, e.g. 'Spanish'."
        )
        parser.add_argument(
            "-s", "--source-lang",
            default="auto",
            help="Source language, or 'auto' to let the model detect it."
        )
        parser.add_argument(
            "-o", "--output-dir",
            default=None, # Default taken from config, then the input's directory
            help="Directory to save the generated subtitle files (.srt)."
        )
        parser.add_argument(
            "-c", "--config",
            default="config.yaml",
            help="Path to the configuration YAML file."
        )
        parser.add_argument(
            "--log-level",
            default="INFO",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Set the logging level for console and file output."
        )
        parser.add_argument("--provider", default=None, choices=PROVIDERS, help="Override the AI provider.")
        parser.add_argument("--model", default=None, help="Override the translation model.")
        parser.add_argument("--rpm", default=None, help="Override requests per minute (integer or 'unlimited').")
        parser.add_argument("--batch-size", type=int, default=None, help="Override the number of lines per request.")
        parser.add_argument("--device", default=None, choices=["cuda", "cpu"], help="Device for local models.")
        parser.add_argument(
            "--validate-key",
            action="store_true",
            help="Only check that the configured API key works, then exit."
        )
        return parser

    @staticmethod
    def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
        """Copies CLI overrides into the loaded config dictionary."""
        overrides = {
            "provider": args.provider,
            "model": args.model,
            "requests_per_minute": args.rpm,
            "batch_size": args.batch_size,
            "device": args.device,
            "output_dir": args.output_dir,
        }
        for key, value in overrides.items():
            if value is not None:
                logger.info(f"Overriding {key} from config with CLI argument: {value}")
                config[key] = value
        return config

    def run(self, argv=None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the generator."""
        args = self.parser.parse_args(argv)

        log_level = getattr(logging, args.log_level.upper(), logging.INFO)
        setup_logging(log_level=log_level, log_dir=None)

        # --- Load Configuration ---
        try:
            config = ConfigLoader().load_config(args.config) if os.path.exists(args.config) else {}
            settings = PipelineSettings.from_mapping(self.apply_overrides(config, args))
        except ConfigurationError as e:
            logger.critical(f"Failed to load configuration from {args.config}: {e}")
            sys.exit(1)

        log_path = setup_logging(log_level=log_level, log_dir=settings.log_dir, log_file=settings.log_file)
        if log_path:
            logger.info(f"Writing debug log to {log_path}")
        governor = RateGovernor(settings.requests_per_minute)

        if args.validate_key:
            try:
                api_key = resolve_api_key(settings.provider, settings.api_key)
                valid = validate_api_key(settings.provider, api_key, governor, model_id=settings.model_id)
            except ConfigurationError as e:
                logger.critical(str(e))
                sys.exit(1)
            sys.exit(0 if valid else 1)

        if not args.input or not args.target_lang:
            self.parser.error("--input and --target-lang are required unless --validate-key is given.")
        if not os.path.isfile(args.input):
            logger.critical(f"Input file not found or is not a file: {args.input}")
            sys.exit(1)
        output_dir = settings.output_dir or os.path.dirname(os.path.abspath(args.input))

        try:
            logger.info("Initializing PolySub components...")
            generator = build_generator(settings, governor, with_transcription=is_audio_file(args.input))

            def report(done: int) -> None:
                logger.info(f"Translated {done} lines so far")

            output_path = generator.generate(
                args.input,
                output_dir,
                args.source_lang,
                args.target_lang,
                on_progress=report,
            )
            logger.info(f"PolySub finished successfully: {output_path}")
            sys.exit(0)

        except BatchExhausted as e:
            logger.error(f"{e} Re-run from subtitle #{e.first_id} to resume.")
            sys.exit(1)
        except PolySubError as e:
            logger.error(f"A PolySub error occurred: {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            sys.exit(1)
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            sys.exit(2) # Use a different exit code for unexpected crashes


def main() -> None:
    CLIHandler().run()

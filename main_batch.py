#!/usr/bin/env python3
"""
PolySub Batch Processing Entry Point

Translates every subtitle (and optionally audio) file in a directory, smallest
first, writing the results into a per-language subfolder. All files share one
rate governor, so the requests-per-minute ceiling holds across the whole run.
"""

import argparse
import logging
import os
import sys
import time
from typing import List, Tuple

# Progress bar library
from tqdm import tqdm

from polysub.config_loader import ConfigLoader
from polysub.exceptions import BatchExhausted, ConfigurationError, FileSystemError, PolySubError
from polysub.log_setup import setup_logging
from polysub.rate_governor import RateGovernor
from polysub.subtitle_generator import build_generator, is_audio_file, is_subtitle_file, language_slug
from polysub.utils import ensure_dir_exists

logger = logging.getLogger(__name__)


def find_and_sort_inputs(input_dir: str, include_audio: bool = False) -> List[Tuple[str, int]]:
    """
    Finds subtitle (and optionally audio) files in the input directory and sorts them by size.

    Args:
        input_dir: The directory to search.
        include_audio: Whether audio files should be transcribed as well.

    Returns:
        A list of (filepath, filesize) tuples sorted by filesize, smallest first.

    Raises:
        FileNotFoundError: If the input directory doesn't exist.
        ValueError: If the input path is not a directory.
    """
    if not os.path.exists(input_dir):
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    if not os.path.isdir(input_dir):
        raise ValueError(f"Input path is not a directory: {input_dir}")

    found = []
    logger.info(f"Scanning directory for input files: {input_dir}")
    for filename in os.listdir(input_dir):
        filepath = os.path.join(input_dir, filename)
        if not (is_subtitle_file(filename) or (include_audio and is_audio_file(filename))):
            continue
        try:
            if os.path.isfile(filepath):
                found.append((filepath, os.path.getsize(filepath)))
        except OSError as e:
            logger.warning(f"Could not access file {filepath}: {e}. Skipping.")

    found.sort(key=lambda item: item[1])
    logger.info(f"Found {len(found)} input files. Sorted by size (smallest first).")
    return found


def run_batch_processing():
    """Parses arguments, sets up, and runs the batch translation."""
    parser = argparse.ArgumentParser(
        description="PolySub Batch: Translate every subtitle file in a directory.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("-i", "--input-dir", required=True, help="Directory containing the input files.")
    parser.add_argument("-t", "--target-lang", required=True, help="Target language, e.g. 'Spanish'.")
    parser.add_argument("-s", "--source-lang", default="auto", help="Source language, or 'auto'.")
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to the configuration YAML file.")
    parser.add_argument(
        "--include-audio",
        action="store_true",
        help="Also transcribe and translate audio files found in the directory."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level for console and file output."
    )
    args = parser.parse_args()

    # --- Console logging until the config names the log directory ---
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    setup_logging(log_level=log_level, log_dir=None)

    # --- Load Configuration ---
    try:
        settings = ConfigLoader().load_settings(args.config)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.critical(f"Failed to load configuration: {e}")
        sys.exit(1)

    setup_logging(log_level=log_level, log_dir=settings.log_dir, log_file='polysub_batch.log')

    # --- Find and Sort Inputs ---
    try:
        inputs = [item[0] for item in find_and_sort_inputs(args.input_dir, args.include_audio)]
    except (FileNotFoundError, ValueError) as e:
        logger.critical(f"Input directory error: {e}")
        sys.exit(1)
    if not inputs:
        logger.warning(f"No input files found in {args.input_dir}. Exiting.")
        sys.exit(0)

    output_dir = settings.output_dir or os.path.join(args.input_dir, "Subs", language_slug(args.target_lang))
    try:
        ensure_dir_exists(output_dir)
    except FileSystemError as e:
        logger.critical(f"Could not create output directory: {e}")
        sys.exit(1)

    # --- Initialize Components (ONCE) ---
    # One generator, one governor: the RPM ceiling spans every file.
    try:
        governor = RateGovernor(settings.requests_per_minute)
        generator = build_generator(
            settings,
            governor,
            with_transcription=any(is_audio_file(path) for path in inputs)
        )
    except PolySubError as e:
        logger.critical(f"Failed to initialize PolySub components: {e}")
        sys.exit(1)

    total_files = len(inputs)
    files_processed = 0
    failed: List[Tuple[str, str]] = []
    batch_start_time = time.time()

    logger.info(f"--- Starting batch translation of {total_files} files into {args.target_lang} ---")

    with tqdm(total=total_files, unit="file", desc="Starting Batch") as pbar:
        for input_path in inputs:
            filename = os.path.basename(input_path)
            pbar.set_description(f"Processing: {filename[:30]}")
            try:
                generator.generate(
                    input_path,
                    output_dir,
                    args.source_lang,
                    args.target_lang,
                    on_progress=lambda done: pbar.set_postfix(lines=done),
                )
                files_processed += 1
            except BatchExhausted as e:
                logger.error(f"'{filename}' stopped at subtitle #{e.first_id}: {e.last_error}")
                failed.append((filename, f"stopped at #{e.first_id}"))
            except PolySubError as e:
                logger.error(f"PolySub failed for '{filename}': {e}")
                failed.append((filename, str(e)))
            except KeyboardInterrupt:
                logger.warning("Batch process interrupted by user (Ctrl+C). Exiting.")
                sys.exit(1)
            except Exception as e:
                logger.error(f"An unexpected error occurred processing '{filename}': {e}", exc_info=True)
                failed.append((filename, str(e)))
            finally:
                pbar.update(1)

    logger.info("--- Batch Translation Finished ---")
    logger.info(f"Total time: {time.time() - batch_start_time:.2f} seconds")
    logger.info(f"Successfully processed: {files_processed}/{total_files} files")
    for filename, reason in failed:
        logger.info(f"Failed: {filename} ({reason})")

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    if sys.version_info < (3, 9):
        sys.stderr.write("PolySub requires Python 3.9 or later.\n")
        sys.exit(1)
    run_batch_processing()

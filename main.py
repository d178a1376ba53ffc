#!/usr/bin/env python3
"""
Main entry point for the Runtime Provisioner.

Usage: main.py [working_dir] [cache_dir]
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from provisioner.core.orchestrator import ProvisioningOrchestrator
from provisioner.utils.logging import setup_root_logger
from config.settings import INHERITED_PATH_VARIABLES, Settings


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Install a JDK and a source-built Python and write an environment descriptor"
    )

    parser.add_argument(
        "working_dir",
        nargs="?",
        type=Path,
        help="Directory to install toolchains into (default: /tmp/provision/app)"
    )

    parser.add_argument(
        "cache_dir",
        nargs="?",
        type=Path,
        help="Directory for cached source archives (default: /tmp/provision/cache)"
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file (JSON format)"
    )

    parser.add_argument(
        "--jdk-version",
        type=str,
        help="JDK feature release to install"
    )

    parser.add_argument(
        "--python-version",
        type=str,
        help="Python release to build from source"
    )

    parser.add_argument(
        "--max-attempts",
        type=int,
        help="Download attempts before giving up (default: 3)"
    )

    parser.add_argument(
        "--keep-build-dir",
        action="store_true",
        help="Keep the interpreter build tree after installing"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        help="Log file (default: <working_dir>/.provision/provision.log)"
    )

    return parser.parse_args(argv)


def load_config(args) -> Settings:
    """Load settings from environment, optional JSON file and command line."""
    config_data = {}
    if args.config:
        with open(args.config) as f:
            config_data = json.load(f)

    if args.jdk_version:
        config_data.setdefault("runtime", {})["version"] = args.jdk_version
    if args.python_version:
        config_data.setdefault("interpreter", {})["version"] = args.python_version
    if args.max_attempts is not None:
        config_data.setdefault("fetch", {})["max_attempts"] = args.max_attempts
    if args.keep_build_dir:
        config_data.setdefault("build", {})["keep_build_dir"] = True
    if args.log_level:
        config_data.setdefault("logging", {})["level"] = args.log_level
    if args.log_file:
        config_data.setdefault("logging", {})["file_path"] = str(args.log_file)

    return Settings(**config_data)


def main(argv: Optional[List[str]] = None) -> int:
    """Run a provisioning pass and return the process exit code."""
    load_dotenv()
    args = parse_arguments(argv)

    try:
        settings = load_config(args)
    except Exception as e:
        setup_root_logger(level="INFO")
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return 1

    log_file = settings.log_file(args.working_dir)
    try:
        setup_root_logger(
            log_file,
            settings.logging.level,
            max_file_size_mb=settings.logging.max_file_size_mb,
            backup_count=settings.logging.backup_count,
        )
    except OSError as e:
        # Console only; the run itself reports unwritable directories
        setup_root_logger(level=settings.logging.level)
        logging.getLogger(__name__).warning(f"Cannot log to {log_file}: {e}")
    logger = logging.getLogger(__name__)
    logger.info("Starting Runtime Provisioner")
    logger.info(f"Arguments: {vars(args)}")

    try:
        run_config = settings.to_run_config(
            working_dir=args.working_dir,
            cache_dir=args.cache_dir,
            base_env={
                name: os.environ[name]
                for name in INHERITED_PATH_VARIABLES
                if os.environ.get(name)
            },
            build_jobs=os.cpu_count(),
        )

        orchestrator = ProvisioningOrchestrator(run_config)
        result = orchestrator.run()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    if result.exit_code == 0:
        logger.info(f"Environment descriptor: {result.descriptor_path}")
    else:
        logger.error(f"Provisioning failed at stage '{result.failed_stage}': {result.error}")
    return result.exit_code


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()

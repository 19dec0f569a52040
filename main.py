#!/usr/bin/env python3
"""Main entry point for Gatekeeper.

Runs one security analysis over the configured data directory and prints
the report as JSON.

Usage:
    python main.py [--hours 24] [--alert-threshold 10]
"""

import argparse
import json
import sys

from gatekeeper.common.config import get_config
from gatekeeper.common.logging import get_logger
from gatekeeper.service import SecurityService

logger = get_logger("gatekeeper")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Gatekeeper security analysis")
    parser.add_argument("--hours", type=int, default=None, help="Hours to analyze")
    parser.add_argument(
        "--alert-threshold", type=int, default=None, help="Failed-login alert threshold"
    )
    args = parser.parse_args()
    
    config = get_config()
    get_logger("gatekeeper", config.log_level.value)
    logger.info(f"Gatekeeper initialized in {config.environment.value} mode")
    logger.info(f"Data directory: {config.data_dir}")
    
    service = SecurityService.from_config(config)
    report = service.analyze(args.hours, args.alert_threshold)
    
    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 1 if report.alerts else 0


if __name__ == "__main__":
    sys.exit(main())

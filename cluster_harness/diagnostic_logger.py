#!/usr/bin/env python3
"""
Diagnostic Logger for the cluster harness

Central logging setup plus a collector that keeps every lifecycle error,
warning and success with its context, so a failed run can be inspected
after the fact from a single JSON report.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("harness")


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Install stdout (and optionally file) handlers on the harness logger."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False


class DiagnosticLogger:
    """Collects lifecycle outcomes for the end-of-run report."""

    def __init__(self):
        self.start_time = datetime.now()
        self.errors: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []
        self.successes: List[Dict[str, Any]] = []

    def log_error(self, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log an error with context."""
        self.errors.append({
            "timestamp": datetime.now().isoformat(),
            "error": error_msg,
            "context": context or {},
        })
        logger.error(f"ERROR: {error_msg}")
        if context:
            logger.error(f"Context: {json.dumps(context, indent=2, default=str)}")

    def log_warning(self, warning_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log a warning with context."""
        self.warnings.append({
            "timestamp": datetime.now().isoformat(),
            "warning": warning_msg,
            "context": context or {},
        })
        logger.warning(f"WARNING: {warning_msg}")
        if context:
            logger.warning(f"Context: {json.dumps(context, indent=2, default=str)}")

    def log_success(self, success_msg: str, context: Optional[Dict[str, Any]] = None):
        self.successes.append({
            "timestamp": datetime.now().isoformat(),
            "success": success_msg,
            "context": context or {},
        })
        logger.info(f"SUCCESS: {success_msg}")

    def generate_report(self, report_path: Optional[str] = None) -> Dict[str, Any]:
        """Build the run report and, when a path is given, save it as JSON."""
        report = {
            "start_time": self.start_time.isoformat(),
            "end_time": datetime.now().isoformat(),
            "errors": self.errors,
            "warnings": self.warnings,
            "successes": self.successes,
            "total_errors": len(self.errors),
            "total_warnings": len(self.warnings),
            "total_successes": len(self.successes),
        }

        if report_path:
            with open(report_path, "w") as f:
                json.dump(report, f, indent=2, default=str)

        logger.info("=" * 60)
        logger.info("DIAGNOSTIC REPORT SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Total Errors: {len(self.errors)}")
        logger.info(f"Total Warnings: {len(self.warnings)}")
        logger.info(f"Total Successes: {len(self.successes)}")
        if report_path:
            logger.info(f"Report saved to: {report_path}")
        logger.info("=" * 60)

        return report

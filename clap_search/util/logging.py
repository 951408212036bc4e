"""
Structured logging for store, model and pipeline operations.
"""

import logging
from typing import Any, Dict

from ..core.config import debug_enabled


class StructuredLogger:
    """Structured logger for store, encoder and pipeline operations."""

    def __init__(self, name: str = "clap_search"):
        self.logger = logging.getLogger(name)
        # DEBUG=true also surfaces per-record insert messages
        self.logger.setLevel(logging.DEBUG if debug_enabled() else logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error", "blocked"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_store_operation(self, operation: str, store_name: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a record store operation."""
        log_details = {"store": store_name}
        if details:
            log_details.update(details)

        self.log_operation(f"store.{operation}", status, log_details)

    def log_model_event(self, encoder: str, event: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log an encoder lifecycle event (load, progress, failure)."""
        log_details = {"encoder": encoder}
        if details:
            log_details.update(details)

        self.log_operation(f"model.{event}", status, log_details)

    def log_pipeline_event(self, kind: str, status: str, details: Dict[str, Any] = None):
        """Log a controller operation transition."""
        self.log_operation(f"pipeline.{kind}", status, details)

    def log_batch_item(self, index: int, total: int, item: str, status: str = "success", error: str = None):
        """Log one file of a batch embed run."""
        details = {"index": index, "total": total, "item": item}
        if error is not None:
            details["error"] = error[:100]

        self.log_operation("pipeline.batch_item", status, details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()

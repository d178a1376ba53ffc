"""
Utility modules for the Runtime Provisioner.
"""

from .logging import setup_logger, setup_root_logger, get_logger, stage_logger

__all__ = ["setup_logger", "setup_root_logger", "get_logger", "stage_logger"]

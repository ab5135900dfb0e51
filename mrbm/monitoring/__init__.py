"""Status reporting for MRBM."""

from .status import StatusReporter

__all__ = ["StatusReporter"]

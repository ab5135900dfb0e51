"""MRBM - Remote backup manager for application servers."""

__version__ = "0.1.0"
__author__ = "MRBM Team"

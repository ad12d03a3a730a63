"""Utility modules for ChemSearch."""

from .config_manager import ConfigManager

__all__ = ['ConfigManager']

"""Shared helpers for grid selection runs."""

from .progress import ProgressMonitor

__all__ = ['ProgressMonitor']

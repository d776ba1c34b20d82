"""
Data management package for order selection.
Handles CSV loading, return preparation, and result storage.
"""

from .data_loader import DataLoader
from .data_prep import ReturnsPrep, strip_boundary_nans

__all__ = ['DataLoader', 'ReturnsPrep', 'strip_boundary_nans']

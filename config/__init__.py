"""Configuration defaults for grid searches and the pipeline."""

from .model_config import GridConfig, PipelineConfig, default_grids

__all__ = ['GridConfig', 'PipelineConfig', 'default_grids']

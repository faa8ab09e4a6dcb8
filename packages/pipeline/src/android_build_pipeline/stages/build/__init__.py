from .stage import stage_build

__all__ = ["stage_build"]

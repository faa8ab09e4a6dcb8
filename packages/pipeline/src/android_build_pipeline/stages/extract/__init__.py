from .stage import stage_extract

__all__ = ["stage_extract"]

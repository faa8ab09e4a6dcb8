from .stage import exit_code_for, stage_finalize

__all__ = ["exit_code_for", "stage_finalize"]

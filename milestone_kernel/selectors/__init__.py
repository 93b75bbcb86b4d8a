"""Selectors for the milestone kernel (read side)."""

from milestone_kernel.selectors.project_selector import ProjectSelector

__all__ = ["ProjectSelector"]

"""oscamp - interactive runner for OS Camp exercises."""

__version__ = "0.1.0"

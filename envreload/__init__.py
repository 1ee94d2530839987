"""Auto-reloading environment holders and scope-bound value handles."""

__version__ = "0.1.0"
__all__ = ["autoreload", "stackref"]
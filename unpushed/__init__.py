"""unpushed — find git repositories with work that has not been pushed."""

__version__ = "0.3.0"

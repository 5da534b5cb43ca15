"""Formula Runner — fetch, patch, build, prune and verify package recipes."""

__version__ = "0.1.0"

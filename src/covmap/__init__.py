"""covmap: coverage analysis, treemap data and gating for pull-request changesets."""

__version__ = "0.1.0"

"""minimem-sync: keep memory directories in sync through a central git repository."""

__version__ = "0.4.0"

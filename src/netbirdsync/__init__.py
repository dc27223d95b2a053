"""NetBirdSync: reconcile NetBird management settings from a desired-state file."""

__version__ = "0.1.0"

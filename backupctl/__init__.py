"""backupctl - configuration-driven backup replication."""

__version__ = "1.0.0"

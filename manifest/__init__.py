"""Living feature documentation: projects, feature trees, sessions, tasks and history on SQLite."""

__version__ = "0.1.17"
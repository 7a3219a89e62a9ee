"""taskminder: task deadlines with delayed, retried reminder delivery."""

__version__ = "0.1.0"

"""poolstat - per-processor and per-pool CPU usage metrics."""

__version__ = "0.1.0"

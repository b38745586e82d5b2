"""gputop - live GPU telemetry in the terminal."""

__version__ = "0.1.0"

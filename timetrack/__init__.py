"""TimeTrack: timer lifecycle and interruption engine."""

__version__ = "0.1.0"

"""Race Edge: adaptive odds-bucket model for six-contender wagering events."""

__version__ = "1.0.0"

"""LiftCore: strength training session analysis."""

__version__ = "0.1.0"

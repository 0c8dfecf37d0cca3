"""ZSphere VM instance lifecycle operator."""

__version__ = "0.1.0"

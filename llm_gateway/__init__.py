"""Gateway that serves text generation across heterogeneous inference backends."""

__version__ = "1.0.0"

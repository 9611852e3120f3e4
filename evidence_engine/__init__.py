"""Evidence Change & Health Consistency Engine."""

__version__ = "0.1.0"

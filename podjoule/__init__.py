"""Energy counters for nodes, containers and processes, with Prometheus metric descriptors."""

__version__ = "0.1.0"
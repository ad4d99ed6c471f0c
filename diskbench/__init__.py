"""diskbench - fio driven storage benchmark engine."""

__version__ = "1.0.0"

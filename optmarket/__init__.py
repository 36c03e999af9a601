"""LS-LMSR options market engine."""

__version__ = '0.1.0'

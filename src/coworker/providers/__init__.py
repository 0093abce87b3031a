"""Model provider adapters; see :mod:`coworker.providers.base`."""

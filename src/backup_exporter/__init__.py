"""Prometheus exporter for backups stored under S3 bucket prefixes."""

__version__ = "1.0.0"

"""Provisioning for the S3 -> Lambda -> S3 face recognition pipeline."""

__version__ = "0.1.0"

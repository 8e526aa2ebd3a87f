"""Scheduled EBS snapshot creation and retention for EC2 instances."""

__version__ = "0.1.0"

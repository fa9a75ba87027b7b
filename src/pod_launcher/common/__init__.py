"""Shared infrastructure for pod_launcher: errors, logging and metrics."""

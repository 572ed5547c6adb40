"""Logging and Prometheus metrics for volm."""

"""Batch services: job executor and the penalty scheduler."""

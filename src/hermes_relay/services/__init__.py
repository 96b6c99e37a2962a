"""Relay components."""

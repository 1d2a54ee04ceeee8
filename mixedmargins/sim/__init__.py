"""Simulation helpers for checking marginal integration."""

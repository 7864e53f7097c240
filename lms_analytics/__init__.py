"""Predictive analytics engine for the learning-management backend."""

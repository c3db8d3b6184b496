"""Core placement, snapshot and action logic."""

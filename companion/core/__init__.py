"""Shared plumbing: errors, results, transport, logging and the voice pipeline."""

"""Compiler adapters producing contract artifacts."""

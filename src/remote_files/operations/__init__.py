"""Mutation engine, conflict resolution and batch coordination."""

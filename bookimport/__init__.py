"""Batch import of a semicolon CSV of books into a library store."""

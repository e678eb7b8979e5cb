"""File storage adapters.

Everything that persists state as plain files (cache entries, rate limit
windows) goes through the atomic write primitive in this package so readers
never observe a partially written file.
"""

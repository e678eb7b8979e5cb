"""Database engines, sessions and ORM models for the content and counters stores."""

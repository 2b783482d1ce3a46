"""Articles API: article CRUD with JWT auth and a Redis read-through cache."""

__version__ = "1.0.0"

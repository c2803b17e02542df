"""
Pytest configuration for client_session. Use in-memory SQLite so tests don't touch the filesystem.
"""
import os

# In-memory SQLite; stores.py uses StaticPool so all connections share the same DB
os.environ["CLIENT_SESSION_DATABASE_URL"] = "sqlite:///:memory:"

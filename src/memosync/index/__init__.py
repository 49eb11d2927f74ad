"""Search index adapters: eventually consistent, never authoritative for CRUD."""

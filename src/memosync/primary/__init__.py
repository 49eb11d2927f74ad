"""Primary store adapters: the authoritative, CAS-capable memo storage."""

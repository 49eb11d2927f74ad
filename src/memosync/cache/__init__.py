"""Cache adapters: latency shortcut only, never authoritative."""

"""memosync: versioned memo storage across a primary store, a cache and a search index.

Layout:
    memosync/
    ├── memo.py          # Memo entity + invariants
    ├── errors.py        # NotFound / Conflict / StorageUnavailable / ...
    ├── primary/         # Authoritative store with compare-and-swap (memory, sqlite)
    ├── cache/           # Read-through, invalidate-on-write cache (memory, redis)
    ├── index/           # Eventually consistent search projection (memory, opensearch)
    ├── repository.py    # Coordinator: the only writer of all three stores
    ├── service.py       # Owner-scoped application service
    └── reconcile.py     # Repairs secondary stores after degraded writes
"""

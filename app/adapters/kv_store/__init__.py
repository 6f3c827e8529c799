"""Key-value store adapters.

Limiters keep their counters in a TTL-keyed string store. The in-memory
adapter serves single-process deployments and tests; the Redis adapter shares
state across workers. Both implement the same async interface.
"""

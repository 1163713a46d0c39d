"""
careaudit - tamper-evident, hash-chained security audit log.

Every entry carries the hash of its predecessor, so any edit, deletion or
reordering of stored entries is detectable by replaying the chain.
"""

__version__ = "0.1.0"

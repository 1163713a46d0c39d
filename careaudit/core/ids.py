"""
Entry identifier generation.

Entry ids are independent of chain position: an entry keeps its id even
when tampering moves it elsewhere in storage, which is what lets the
verifier name the entry that broke.
"""

import uuid


def new_entry_id() -> str:
    """Random UUID4 string, e.g. "3f2b8c1e-..."."""
    return str(uuid.uuid4())

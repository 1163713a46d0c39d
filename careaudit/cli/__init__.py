"""
careaudit CLI - operator tooling for the tamper-evident audit log

Commands:
- careaudit log tail/query/summary/export/append - Audit log operations
- careaudit verify range/chain - Hash chain integrity checks
- careaudit checkpoint create/verify - Signed chain-tip checkpoints
- careaudit version
"""

"""
Storage Package.

This package owns all metric state and its persistence.

Modules:
- models/: Metric kinds and merge rules
- repositories/: The repository contract and its backends
- snapshot: Snapshot file, restore-on-boot, periodic snapshots
"""

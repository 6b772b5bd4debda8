"""Stack engines: partitioning, topology, sync, resolution and restack."""

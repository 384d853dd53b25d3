"""Package dependency graph: discovery, trees, cycles and reverse lookups."""

"""Framework-free link graph algorithms: scoring, policy, placement and PageRank."""

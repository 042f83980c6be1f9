"""Application services orchestrating domain rules and persistence."""

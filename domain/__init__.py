"""Domain model: pure rules, no I/O."""

"""Cross-repository analytics: language usage and activity scores."""

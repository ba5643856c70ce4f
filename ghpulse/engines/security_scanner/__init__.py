"""Content security scanner: regex secret detection over repository files."""

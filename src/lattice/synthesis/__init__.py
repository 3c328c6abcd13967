"""Example-driven synthesis: regexes, extractors, converters and their reuse."""

"""Command line interface for PrintStack."""

"""Source fragments for each kind of generated module."""

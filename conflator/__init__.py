"""
Conflator - merge imported map features into an existing dataset

Detects where new data should connect to existing data, records the
pending edits as directive tags, and turns them into reversible edits.
"""

__version__ = "0.1.0"

"""Domain Event definitions.

Represents significant occurrences within the pipeline that other
components react to.
"""

"""SpellTree: validation and repair of generated spell prerequisite trees."""

__version__ = "0.1.0"

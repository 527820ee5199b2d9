"""esptext: extract, edit and write back text in Bethesda plugin files."""

__version__ = "0.1.0"

"""structuredtree: dot-delimited note hierarchies over folders of Markdown files."""

__version__ = "0.3.0"

"""Query building and export."""

"""Evidence chunks, links and tagged artifact references."""

"""Catalog query engine: faceted search and pagination over a course catalog."""

"""Catalog search REST API package.

Sub-modules expose FastAPI routers:
- search: search session submission, paging and cancellation
"""

"""
Backend package for the content APIs.

This package provides a FastAPI application serving the portfolio,
marketing-site and nonprofit content types, with document storage and
media hosting behind swappable client abstractions.
"""

"""Application package for the nonprofit management backend.

This package exposes the model, repository and service modules used by
the FastAPI application: finance (funds, categories, donors, grants and
transactions), inventory tracking and building maintenance. Individual
modules contain the concrete implementations and documentation.
"""

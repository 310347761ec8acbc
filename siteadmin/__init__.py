"""
Administrative backend for the business website.

This package provides a FastAPI application for the admin panel: login,
gallery projects with their blob-stored images, and the smaller content
sections (hero slides, services, about text, contact info).
"""

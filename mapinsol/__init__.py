"""
Top-level package for the Mapinsol best-practice catalog.

This package reads "best practice" records from the foundation's WordPress
REST API, normalises the CMS plugin's loose encodings into typed records,
and serves listing, detail, filtering and related-practice views over
FastAPI and a small CLI.  There are no side effects on import; the CMS
connection is configured by whoever builds the client.
"""

"""
Top-level package for the marketplace catalog search service.

This package contains the fuzzy listing search core (similarity scoring,
per-listing weighted scoring and the ranking pipeline), the catalog
providers that supply denormalized listings from a snapshot file, the
marketplace SQLite database or a remote endpoint, and a small FastAPI
application that serves paginated search results.  There are no
side-effects on import; logging sinks are installed explicitly by the
API startup hook and the CLI.
"""

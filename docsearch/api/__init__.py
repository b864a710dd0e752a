"""HTTP API for the document search core."""

from docsearch.api.app import create_app

__all__ = ["create_app"]

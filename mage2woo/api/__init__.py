"""REST API for starting and monitoring migrations."""

"""Feed pipeline: group handling, fetch coordination, transformation and formatting."""

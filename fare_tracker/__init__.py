"""Amadeus fare tracker: cheap-date discovery, layover filtering and alerts."""

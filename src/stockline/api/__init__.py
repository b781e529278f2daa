"""HTTP API for Stockline."""

"""HTTP API for Sinoman."""

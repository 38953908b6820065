"""Database layer for Sinoman."""

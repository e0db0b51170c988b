"""Database-backed services: scan record persistence, single-file scans and reports."""

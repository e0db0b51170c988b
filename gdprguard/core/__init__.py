"""Core scanning engine: detector registry, pattern scanner and bulk folder scanner."""

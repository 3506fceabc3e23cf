"""Download of remote columnar data files."""

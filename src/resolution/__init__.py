"""Multi-source version resolution."""

"""Archive extraction and install orchestration."""

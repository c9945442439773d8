"""GoFast Garmin connection service."""

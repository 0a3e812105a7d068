"""Settings, logging, error taxonomy and shared types."""

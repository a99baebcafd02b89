"""Game server player-count monitor and chart pipeline."""

"""Application layer: navigation, streaming overlay, service wiring."""

"""Infrastructure layer: storage, transports, factories and wiring."""

"""AI layer: provider implementations and the generation backend."""

"""Chat-side relay: webhook intake, pairing and push dispatch."""

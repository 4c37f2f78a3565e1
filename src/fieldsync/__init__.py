"""FieldSync -- offline write queue and replay for manhole survey records."""

"""Host services homefleet provisions and maintains."""

"""Domain records and the response envelope."""

"""HTTP API for the kasmoni payment engine."""

"""HTTP middleware for the CovenantWatch API."""

"""HTTP surface of the Lob board backend (API Gateway -> Lambda proxy)."""

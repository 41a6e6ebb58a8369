"""HTTP trigger endpoints."""

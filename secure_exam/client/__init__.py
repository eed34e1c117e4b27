"""Candidate-side exam runtime: API client, integrity monitor and exam flow."""

"""Intervia ticketing middleware."""

"""Checkout orchestration service for the tour marketplace app."""

"""Supabase persistence and atomic database calls."""

"""Grimoire: D&D 5e character sheet reference data with a client-style cache layer."""

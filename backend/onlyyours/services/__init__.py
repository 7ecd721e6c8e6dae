"""Thin adapters over the collaborators the game engine depends on."""

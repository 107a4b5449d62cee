"""Simsala — schema-constrained item and NPC generation for 5e game documents."""

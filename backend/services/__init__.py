"""Pulse core: entities, lifecycle rules, metrics, search and entity stores."""

"""Database repository helpers."""

from repositories.match_source import ensure_match_source_schema, fetch_game_matches

__all__ = ["ensure_match_source_schema", "fetch_game_matches"]

"""Streak engine: current/longest streaks and risk tiers from contribution days."""

"""Stream and text helpers."""

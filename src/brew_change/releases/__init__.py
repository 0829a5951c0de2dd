"""Release metadata lookups against Homebrew, GitHub, npm, and raw changelogs."""

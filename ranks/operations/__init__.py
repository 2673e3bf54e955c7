"""
Operations Layer

Business logic operations that compose database access into complete
workflows. Operations handle multi-step transactions, validation and
business rules.

Architecture:
- Database layer: models, storage handle and the match lifecycle
- Operations layer: challenges, seasons, players and admin maintenance
- Command layer: Discord cogs

Each operations module focuses on a specific domain:
- ChallengeOperations: challenge proposal, response and expiry
- SeasonOperations: seasonal rating rollover
- PlayerOperations: player registration and Discord user integration
- AdminOperations: rating resets and role changes
"""

"""Website effectiveness scoring - Worker Package."""

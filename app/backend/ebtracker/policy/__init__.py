"""Authorization and state-transition policy core."""

"""Schema inference over sampled documents."""

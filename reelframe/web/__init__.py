"""HTTP control surface for the Reelframe supervisor."""

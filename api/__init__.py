"""HTTP surface for the supplier risk engine."""

"""Calendar feed export."""

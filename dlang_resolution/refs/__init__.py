"""Import address classification and ref/version policy."""

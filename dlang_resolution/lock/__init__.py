"""model.lock persistence and the install workflow."""

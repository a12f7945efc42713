"""Study-plan scheduling backend."""

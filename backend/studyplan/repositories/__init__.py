"""SQLAlchemy repositories for learners and study content."""
